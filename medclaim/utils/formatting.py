"""Display formatting helpers for claim values."""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from medclaim.core.enums import ClaimStatus

# Badge colours per status, matching the dashboard stylesheet
STATUS_COLORS: dict[ClaimStatus, tuple[str, str]] = {
    ClaimStatus.APPROVED: ("#D4EDDA", "#155724"),
    ClaimStatus.REJECTED: ("#F8D7DA", "#721C24"),
    ClaimStatus.PENDING: ("#FFF3CD", "#856404"),
}


def format_currency(value: Any, symbol: str = "₹") -> str:
    """
    Format a cost with a currency symbol and thousands separators.

    Whole amounts render without decimals (``₹5,000``); fractional amounts
    keep two places (``₹1,234.50``). Non-numeric input renders as an em dash.
    """
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return "—"
    if not amount.is_finite():
        return "—"
    if amount == amount.to_integral_value():
        return f"{symbol}{int(amount):,}"
    return f"{symbol}{amount:,.2f}"


def format_status(status: Any) -> str:
    """Capitalise a status value for display: ``pending`` -> ``Pending``."""
    raw = status.value if isinstance(status, ClaimStatus) else str(status or "")
    return raw[:1].upper() + raw[1:]


def format_date(value: datetime | None, fmt: str = "%d/%m/%Y") -> str:
    """Render a timestamp as a short local date."""
    if value is None:
        return ""
    if value.tzinfo is not None:
        value = value.astimezone()
    return value.strftime(fmt)


def status_colors(status: Any) -> tuple[str, str]:
    """Return (background, foreground) colours for a status badge."""
    try:
        return STATUS_COLORS[ClaimStatus(status)]
    except ValueError:
        return STATUS_COLORS[ClaimStatus.PENDING]
