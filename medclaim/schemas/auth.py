"""
Authentication Schemas
Pydantic models for the authenticated identity.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr


class AuthSession(BaseModel):
    """
    The signed-in identity.

    access_token is opaque to this application; it is held only so the
    provider client can authorise subsequent requests.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    email: EmailStr
    full_name: str = ""
    access_token: str

    @property
    def display_name(self) -> str:
        """Name shown in the header, falling back to the email address."""
        return self.full_name or str(self.email)


class SignUpResult(BaseModel):
    """Outcome of creating an account."""

    user_id: str
    email: EmailStr
    session: Optional[AuthSession] = None

    @property
    def verification_required(self) -> bool:
        """True when the provider withholds a session until the email is confirmed."""
        return self.session is None
