"""
Core Enumerations for the MedClaim client.

Values mirror the strings stored by the backend so that they can be
compared directly against rows and realtime payloads.
"""

from enum import Enum


# =============================================================================
# Claim Enums
# =============================================================================


class ClaimStatus(str, Enum):
    """Claim review status. Assigned and changed only by the backend."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# =============================================================================
# Backend Configuration Enums
# =============================================================================


class BackendMode(str, Enum):
    """Which backend implementation the app talks to."""

    DEMO = "demo"  # In-process, in-memory backend
    LIVE = "live"  # Hosted Supabase project


class ChangeEventType(str, Enum):
    """Row-level change events delivered by the realtime channel."""

    ALL = "*"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


# =============================================================================
# Session / UI Enums
# =============================================================================


class AuthState(str, Enum):
    """Session store lifecycle states."""

    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"


class NotificationLevel(str, Enum):
    """Severity of a toast notification."""

    SUCCESS = "success"
    INFO = "info"
    ERROR = "error"
