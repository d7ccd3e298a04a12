"""
Custom Exceptions
Application-specific error taxonomy.

Gateways translate provider exceptions into these types; the UI catches them
at the point of the user action and turns them into notifications.
"""

from typing import Optional


class MedClaimError(Exception):
    """Base exception for application errors."""

    default_message = "Something went wrong"

    def __init__(
        self,
        message: Optional[str] = None,
        provider: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.message = message or self.default_message
        super().__init__(self.message)
        self.provider = provider
        self.original_error = original_error


class ConfigurationError(MedClaimError):
    """Raised when the selected backend is missing required settings"""

    default_message = "Backend is not configured"


# =============================================================================
# Authentication
# =============================================================================


class AuthError(MedClaimError):
    """Raised when an identity provider call fails"""

    default_message = "Authentication failed"


class InvalidCredentialsError(AuthError):
    """Raised when email/password do not match an account"""

    default_message = "Invalid login credentials"


class DuplicateEmailError(AuthError):
    """Raised when signing up with an email that is already registered"""

    default_message = "User already registered"


class VerificationPendingError(AuthError):
    """Raised when signing in before the email address is confirmed"""

    default_message = "Email not confirmed"


# =============================================================================
# Claims Data
# =============================================================================


class FetchError(MedClaimError):
    """Raised when reading claims or documents fails"""

    default_message = "Failed to fetch claims"


class UploadError(MedClaimError):
    """Raised when storing a supporting document fails"""

    default_message = "Failed to upload document"


class InsertError(MedClaimError):
    """Raised when writing a claim row fails"""

    default_message = "Failed to submit claim"


# =============================================================================
# Client-side Validation
# =============================================================================


class FormValidationError(MedClaimError):
    """Raised when a form fails client-side validation"""

    default_message = "Please correct the highlighted fields"

    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors) if errors else None)
        self.errors = errors
