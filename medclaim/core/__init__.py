"""Core configuration and enumerations."""

from medclaim.core.config import Settings, get_settings
from medclaim.core.enums import AuthState, BackendMode, ChangeEventType, ClaimStatus, NotificationLevel

__all__ = [
    "Settings",
    "get_settings",
    "AuthState",
    "BackendMode",
    "ChangeEventType",
    "ClaimStatus",
    "NotificationLevel",
]
