"""
Storefront Analytics Engine
Configuration Module
"""
from .settings import (
    AbuseDetectionSettings,
    AnalyticsSettings,
    Settings,
    get_settings,
)

__all__ = [
    "AbuseDetectionSettings",
    "AnalyticsSettings",
    "Settings",
    "get_settings",
]
