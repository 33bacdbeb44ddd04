"""Service layer exports."""

from .version_control import PlaybookVersionControl

__all__ = ["PlaybookVersionControl"]
