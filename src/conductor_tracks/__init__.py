"""Track lifecycle and archival engine for conductor workspaces."""

__version__ = "0.1.0"

__all__ = ["__version__"]
