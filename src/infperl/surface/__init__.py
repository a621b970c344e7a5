"""Display surfaces: output buffer, prompt policy and input history."""

from infperl.surface.history import HistoryRing
from infperl.surface.surface import ReplSurface, SurfacePolicy

__all__ = [
    "HistoryRing",
    "ReplSurface",
    "SurfacePolicy",
]
