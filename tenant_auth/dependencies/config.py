"""
FastAPI dependency utilities for injecting configuration and shared clients.
"""

from fastapi import Depends

from tenant_auth.core.config import AppSettings, get_settings


def get_app_settings() -> AppSettings:
    """FastAPI dependency returning application settings."""
    return get_settings()


SettingsDependency = Depends(get_app_settings)

__all__ = ["SettingsDependency", "get_app_settings"]
