"""
Base Gateway Abstract Classes for the Backend Abstraction Layer.

The application consumes four external collaborators: an identity provider,
a claims table, object storage, and a change notification channel. Each is
an abstract gateway here; ``supabase_gateway`` and ``demo_gateway`` provide
the live and in-memory implementations.

Gateways raise only the errors in ``medclaim.utils.errors``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional

from medclaim.core.enums import BackendMode, ChangeEventType
from medclaim.schemas.auth import AuthSession, SignUpResult
from medclaim.schemas.claim import ChangeEvent

ChangeCallback = Callable[[ChangeEvent], None]


class IdentityGateway(ABC):
    """Hosted authentication."""

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> AuthSession:
        """Authenticate with email and password."""
        pass

    @abstractmethod
    async def sign_up(self, email: str, password: str, full_name: str) -> SignUpResult:
        """Create an account; full_name is stored as user metadata."""
        pass

    @abstractmethod
    async def sign_out(self, session: Optional[AuthSession] = None) -> None:
        """End the provider session."""
        pass


class ClaimsTableGateway(ABC):
    """Managed relational table holding claim rows."""

    @abstractmethod
    async def select_all(self, order_by: str = "created_at", descending: bool = True) -> list[dict[str, Any]]:
        """Fetch every visible row, ordered."""
        pass

    @abstractmethod
    async def insert(self, row: dict[str, Any]) -> Optional[dict[str, Any]]:
        """Insert one row and return it as stored, if the provider returns it."""
        pass


class ObjectStorageGateway(ABC):
    """File storage bucket for supporting documents."""

    @abstractmethod
    async def upload(self, path: str, content: bytes, content_type: str) -> str:
        """Store content under path and return the stored path reference."""
        pass

    @abstractmethod
    async def download(self, path: str) -> bytes:
        """Return the stored content."""
        pass

    @abstractmethod
    async def create_signed_url(self, path: str, expires_in: int) -> str:
        """Return a temporary URL for the stored object."""
        pass


class ChangeSubscription(ABC):
    """Handle for an open change-feed subscription."""

    @property
    @abstractmethod
    def is_active(self) -> bool:
        pass

    @abstractmethod
    async def unsubscribe(self) -> None:
        """Close the subscription. Calling it more than once is a no-op."""
        pass


class ChangeChannelGateway(ABC):
    """Realtime row-change notifications."""

    @abstractmethod
    async def subscribe(
        self,
        table: str,
        event: ChangeEventType,
        callback: ChangeCallback,
    ) -> ChangeSubscription:
        """Invoke callback for every matching change on table."""
        pass


@dataclass
class BackendServices:
    """The set of gateways for one backend, bound to one browser session."""

    mode: BackendMode
    identity: IdentityGateway
    claims: ClaimsTableGateway
    storage: ObjectStorageGateway
    changes: ChangeChannelGateway
    closer: Optional[Callable[[], Any]] = None

    async def close(self) -> None:
        """Release provider connections."""
        if self.closer is None:
            return
        result = self.closer()
        if hasattr(result, "__await__"):
            await result
