"""Terminal UI for Metascope."""

from .app import MetascopeApp

__all__ = ["MetascopeApp"]
