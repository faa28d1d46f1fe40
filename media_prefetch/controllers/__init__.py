"""Controller layer for decoupling prefetch state from viewer widgets."""

from .session import PrefetchSession

__all__ = ["PrefetchSession"]
