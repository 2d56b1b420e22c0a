"""Health probes."""

from .router import router


__all__ = ["router"]
