"""
Vehicle Specification Engine
Configuration Module
"""
from .settings import CatalogSettings, Settings, get_settings

__all__ = ["CatalogSettings", "Settings", "get_settings"]
