"""Utility helpers: invalidation signal shared by the particle and bond stores."""

import weakref


class InvalidationSignal:
    """Fan-out of a no-argument "your derived state is stale" notification.

    Bound methods are held through weak references so that a store never
    keeps a discarded evaluator (and its result arrays) alive. Plain
    functions are held strongly.
    """

    def __init__(self):
        self._slots = []

    def connect(self, callback):
        """Register callback; it is called with no arguments on emit()."""
        if hasattr(callback, "__self__") and hasattr(callback, "__func__"):
            self._slots.append(weakref.WeakMethod(callback))
        else:
            self._slots.append(lambda: callback)

    def emit(self):
        """Call every live callback and drop the dead ones."""
        live = []
        for ref in self._slots:
            callback = ref()
            if callback is None:
                continue
            live.append(ref)
            callback()
        self._slots = live

    def __len__(self):
        return sum(1 for ref in self._slots if ref() is not None)
