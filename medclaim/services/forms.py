"""
Client-side form validation.

Each modal builds one of these models from the widget values. Validation is
limited to required fields, email shape, numeric non-negative cost and the
document file type; everything else is the backend's responsibility.
"""

from typing import Any, Iterable, Optional, TypeVar

from pydantic import BaseModel, EmailStr, Field, ValidationError, field_validator

from medclaim.schemas.claim import ClaimCreate, DocumentUpload
from medclaim.utils.errors import FormValidationError

FIELD_LABELS = {
    "email": "Email",
    "password": "Password",
    "full_name": "Full name",
    "patient_name": "Patient name",
    "diagnosis": "Diagnosis",
    "treatment": "Treatment",
    "cost": "Cost",
}

FormT = TypeVar("FormT", bound=BaseModel)


def _strip(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def _required_text(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise ValueError("is required")
    return value


class LoginForm(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)

    strip_email = field_validator("email", mode="before")(_strip)


class SignupForm(BaseModel):
    full_name: str
    email: EmailStr
    password: str = Field(..., min_length=1)

    strip_email = field_validator("email", mode="before")(_strip)
    check_name = field_validator("full_name", mode="before")(_required_text)


class NewClaimForm(BaseModel):
    """Values entered in the Submit New Claim modal."""

    patient_name: str
    diagnosis: str
    treatment: str
    cost: float = Field(..., ge=0, allow_inf_nan=False)
    document: Optional[DocumentUpload] = None

    check_text = field_validator("patient_name", "diagnosis", "treatment", mode="before")(_required_text)

    @field_validator("cost", mode="before")
    @classmethod
    def parse_cost(cls, v: Any) -> Any:
        """Accept number inputs and typed text such as ``5,000``."""
        if isinstance(v, str):
            cleaned = v.replace(",", "").replace("₹", "").strip()
            if not cleaned:
                raise ValueError("is required")
            return cleaned
        if v is None:
            raise ValueError("is required")
        return v

    def to_claim(self) -> ClaimCreate:
        return ClaimCreate(
            patient_name=self.patient_name,
            diagnosis=self.diagnosis,
            treatment=self.treatment,
            cost=self.cost,
        )


def _describe(error: dict[str, Any]) -> str:
    field_name = str(error["loc"][0]) if error.get("loc") else ""
    label = FIELD_LABELS.get(field_name, field_name.replace("_", " ").capitalize())
    error_type = error.get("type", "")

    if error_type == "missing" or error.get("msg", "").endswith("is required"):
        return f"{label} is required"
    if field_name == "email":
        return "Enter a valid email address"
    if field_name == "password":
        return "Password is required"
    if field_name == "cost":
        if error_type == "greater_than_equal":
            return "Cost cannot be negative"
        return "Cost must be a number"
    return f"{label}: {error.get('msg', 'invalid value')}"


def validate_form(form_cls: type[FormT], data: dict[str, Any]) -> FormT:
    """
    Build a form model, converting pydantic errors to FormValidationError.

    Raises:
        FormValidationError: with one readable message per invalid field
    """
    try:
        return form_cls.model_validate(data)
    except ValidationError as e:
        messages: list[str] = []
        for error in e.errors():
            message = _describe(error)
            if message not in messages:
                messages.append(message)
        raise FormValidationError(messages) from e


def validate_document(upload: Optional[DocumentUpload], allowed_types: Iterable[str]) -> None:
    """Reject documents whose extension is not in allowed_types."""
    if upload is None:
        return
    allowed = {t.lower().lstrip(".") for t in allowed_types}
    if upload.extension not in allowed:
        accepted = ", ".join(f".{t}" for t in sorted(allowed))
        raise FormValidationError([f"Supporting document must be one of: {accepted}"])
