"""Pydantic schemas."""

from medclaim.schemas.auth import AuthSession, SignUpResult
from medclaim.schemas.claim import ChangeEvent, Claim, ClaimBase, ClaimCreate, DocumentUpload

__all__ = [
    "AuthSession",
    "SignUpResult",
    "ChangeEvent",
    "Claim",
    "ClaimBase",
    "ClaimCreate",
    "DocumentUpload",
]
