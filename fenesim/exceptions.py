"""Error taxonomy for the bonded-force core.

Every error here is fatal for the step being computed: callers are expected
to halt and report, never to substitute a default value.
"""


class FeneSimError(Exception):
    """Base class for all fenesim errors."""
    def __init__(self, message="fenesim error."):
        super().__init__(message)


class InvalidTag(FeneSimError):
    """A particle tag or slot does not refer to a live particle."""
    def __init__(self, message="Particle tag is not live."):
        super().__init__(message)


class InvalidType(FeneSimError):
    """A bond type id has no registered parameters."""
    def __init__(self, message="Bond type has no registered parameters."):
        super().__init__(message)


class DomainError(FeneSimError, ValueError):
    """A parameter value is outside its physical domain."""
    def __init__(self, message="Parameter value outside its physical domain."):
        super().__init__(message)


class ConcurrentMutationViolation(FeneSimError):
    """A mutable particle view was requested while another is outstanding."""
    def __init__(self, message="A mutable particle view is already outstanding."):
        super().__init__(message)


class StaleResultsError(FeneSimError, RuntimeError):
    """Force arrays were acquired before compute() or after an invalidation."""
    def __init__(self, message="Force arrays are stale; call compute() first."):
        super().__init__(message)


class BondEvaluationError(FeneSimError):
    """A single bond could not be evaluated.

    Attributes:
        type_id: bond type id
        tag_a, tag_b: particle tags of the two endpoints
        r: minimum-image separation at the failing evaluation
    """
    reason = "bond evaluation failed"

    def __init__(self, type_id, tag_a, tag_b, r, detail=""):
        self.type_id = int(type_id)
        self.tag_a = int(tag_a)
        self.tag_b = int(tag_b)
        self.r = float(r)
        message = (
            f"{self.reason}: bond {self.tag_a}-{self.tag_b} "
            f"(type {self.type_id}) at r={self.r:.6g}"
        )
        if detail:
            message = f"{message}, {detail}"
        super().__init__(message)


class BondOverextended(BondEvaluationError):
    """Bond separation reached the FENE singularity (r >= r0)."""
    reason = "bond overextended"

    def __init__(self, type_id, tag_a, tag_b, r, r0):
        self.r0 = float(r0)
        super().__init__(type_id, tag_a, tag_b, r, detail=f"r0={self.r0:.6g}")


class BondCollapsed(BondEvaluationError):
    """Bond endpoints coincide, so the force direction is undefined."""
    reason = "bond collapsed"
