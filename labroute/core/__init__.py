"""
Core package for LabRoute.
"""
from labroute.core.config import settings, get_settings

__all__ = ["settings", "get_settings"]
