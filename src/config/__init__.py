"""Configuration module for the settlement engine."""

from .database import DatabaseSettings
from .settings import (
    ComplianceSettings,
    PayoutSettings,
    Settings,
    TaskScheduleSettings,
    TinSettings,
    get_settings,
)

__all__ = [
    "DatabaseSettings",
    "ComplianceSettings",
    "PayoutSettings",
    "Settings",
    "TaskScheduleSettings",
    "TinSettings",
    "get_settings",
]
