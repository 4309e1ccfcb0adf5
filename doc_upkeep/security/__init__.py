"""Security module for doc-upkeep."""

from .validators import PathValidator

__all__ = ["PathValidator"]
