"""Font resolution for the headless renderer."""

from .registry import FontHandle, FontRegistry, generic_family

__all__ = ["FontHandle", "FontRegistry", "generic_family"]
