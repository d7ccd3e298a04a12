"""
Demo Backend Gateways.

In-memory implementation of the backend used when BACKEND_MODE=demo and in
tests. Behaves like the hosted provider from the client's point of view:
passwords are bcrypt-hashed, sessions carry signed tokens, rows get a
backend-assigned id/status/created_at, and every row change is published to
subscribers of the table.

One ``DemoStore`` may be shared by many browser sessions so that claims
submitted in one tab appear in the others through the change feed.
"""

import asyncio
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from uuid import uuid4

from medclaim.core.config import Settings
from medclaim.core.enums import BackendMode, ChangeEventType, ClaimStatus
from medclaim.gateways.base import (
    BackendServices,
    ChangeCallback,
    ChangeChannelGateway,
    ChangeSubscription,
    ClaimsTableGateway,
    IdentityGateway,
    ObjectStorageGateway,
)
from medclaim.schemas.auth import AuthSession, SignUpResult
from medclaim.schemas.claim import ChangeEvent
from medclaim.utils.auth import create_access_token, get_password_hash, verify_password
from medclaim.utils.errors import (
    AuthError,
    DuplicateEmailError,
    FetchError,
    InsertError,
    InvalidCredentialsError,
    UploadError,
    VerificationPendingError,
)
from medclaim.utils.logging import get_logger

logger = get_logger(__name__)

PROVIDER = "demo"
MIN_PASSWORD_LENGTH = 6
REQUIRED_CLAIM_COLUMNS = ("patient_name", "diagnosis", "treatment", "cost")


@dataclass
class DemoUser:
    """A registered demo account."""

    user_id: str
    email: str
    full_name: str
    password_hash: str
    confirmed: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class _Subscriber:
    table: str
    event: ChangeEventType
    callback: ChangeCallback

    def matches(self, table: str, event: ChangeEventType) -> bool:
        if self.table not in ("*", table):
            return False
        return self.event in (ChangeEventType.ALL, event)


class DemoStore:
    """Shared in-memory state for the demo backend."""

    def __init__(self, seed_claims: bool = True, claims_table: str = "claims"):
        self._lock = threading.RLock()
        self._last_timestamp: Optional[datetime] = None
        self.users: dict[str, DemoUser] = {}
        self.tables: dict[str, dict[str, dict[str, Any]]] = {}
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.active_tokens: set[str] = set()
        self._subscribers: dict[str, _Subscriber] = {}
        if seed_claims:
            self._seed_default_claims(claims_table)

    def _seed_default_claims(self, table: str) -> None:
        """Seed sample claims, oldest first."""
        now = datetime.now(timezone.utc)
        samples = [
            ("Ravi Kumar", "Type 2 diabetes", "Insulin therapy", 12500, ClaimStatus.APPROVED, 9),
            ("Meera Iyer", "Appendicitis", "Laparoscopic appendectomy", 85000, ClaimStatus.REJECTED, 5),
            ("Arjun Mehta", "Dengue fever", "Inpatient care, 4 days", 42000, ClaimStatus.PENDING, 2),
        ]
        rows = self.tables.setdefault(table, {})
        for patient, diagnosis, treatment, cost, status, days_ago in samples:
            claim_id = str(uuid4())
            rows[claim_id] = {
                "id": claim_id,
                "patient_name": patient,
                "diagnosis": diagnosis,
                "treatment": treatment,
                "cost": cost,
                "status": status.value,
                "document_url": None,
                "created_at": (now - timedelta(days=days_ago)).isoformat(timespec="microseconds"),
            }

    def next_timestamp(self) -> datetime:
        """Return a strictly increasing UTC timestamp."""
        with self._lock:
            now = datetime.now(timezone.utc)
            if self._last_timestamp is not None and now <= self._last_timestamp:
                now = self._last_timestamp + timedelta(microseconds=1)
            self._last_timestamp = now
            return now

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def find_user(self, email: str) -> Optional[DemoUser]:
        with self._lock:
            return self.users.get(email.strip().lower())

    def add_user(self, email: str, password: str, full_name: str, confirmed: bool) -> DemoUser:
        key = email.strip().lower()
        password_hash = get_password_hash(password)
        with self._lock:
            if key in self.users:
                raise DuplicateEmailError(provider=PROVIDER)
            user = DemoUser(
                user_id=str(uuid4()),
                email=key,
                full_name=full_name,
                password_hash=password_hash,
                confirmed=confirmed,
            )
            self.users[key] = user
            return user

    def confirm_email(self, email: str) -> None:
        """Mark an account as verified, as clicking the emailed link would."""
        user = self.find_user(email)
        if user is None:
            raise AuthError(f"No account for {email}", PROVIDER)
        user.confirmed = True

    # ------------------------------------------------------------------
    # Rows
    # ------------------------------------------------------------------

    def rows(self, table: str) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(row) for row in self.tables.get(table, {}).values()]

    def insert_row(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        stored = dict(row)
        stored["id"] = str(uuid4())
        stored["status"] = ClaimStatus.PENDING.value
        stored["created_at"] = self.next_timestamp().isoformat(timespec="microseconds")
        with self._lock:
            self.tables.setdefault(table, {})[stored["id"]] = stored
        self.publish(table, ChangeEventType.INSERT, record=dict(stored))
        return dict(stored)

    def set_claim_status(self, table: str, claim_id: str, status: ClaimStatus) -> dict[str, Any]:
        """Administrative status change; not reachable from the client UI."""
        with self._lock:
            row = self.tables.get(table, {}).get(claim_id)
            if row is None:
                raise KeyError(claim_id)
            old = dict(row)
            row["status"] = ClaimStatus(status).value
            updated = dict(row)
        self.publish(table, ChangeEventType.UPDATE, record=updated, old_record=old)
        return updated

    def delete_row(self, table: str, claim_id: str) -> None:
        """Administrative delete; not reachable from the client UI."""
        with self._lock:
            old = self.tables.get(table, {}).pop(claim_id, None)
        if old is None:
            raise KeyError(claim_id)
        self.publish(table, ChangeEventType.DELETE, old_record=old)

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    def put_object(self, key: str, content: bytes, content_type: str) -> None:
        with self._lock:
            if key in self.objects:
                raise UploadError("The resource already exists", PROVIDER)
            self.objects[key] = (content, content_type)

    def get_object(self, key: str) -> bytes:
        with self._lock:
            entry = self.objects.get(key)
        if entry is None:
            raise FetchError(f"Object not found: {key}", PROVIDER)
        return entry[0]

    # ------------------------------------------------------------------
    # Change feed
    # ------------------------------------------------------------------

    def add_subscriber(self, subscriber: _Subscriber) -> str:
        subscription_id = str(uuid4())
        with self._lock:
            self._subscribers[subscription_id] = subscriber
        return subscription_id

    def remove_subscriber(self, subscription_id: str) -> None:
        with self._lock:
            self._subscribers.pop(subscription_id, None)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(
        self,
        table: str,
        event_type: ChangeEventType,
        record: Optional[dict[str, Any]] = None,
        old_record: Optional[dict[str, Any]] = None,
    ) -> None:
        """Deliver a change to every matching subscriber."""
        change = ChangeEvent(event_type=event_type, table=table, record=record, old_record=old_record)
        with self._lock:
            targets = [s for s in self._subscribers.values() if s.matches(table, event_type)]
        for subscriber in targets:
            try:
                subscriber.callback(change)
            except Exception:
                logger.exception(f"Change subscriber failed for {table} {event_type.value}")


# =============================================================================
# Gateways
# =============================================================================


class DemoIdentityGateway(IdentityGateway):
    """Email/password accounts held in the demo store."""

    def __init__(self, store: DemoStore, settings: Settings):
        self._store = store
        self._settings = settings

    def _issue_session(self, user: DemoUser) -> AuthSession:
        token = create_access_token(
            {"sub": user.user_id, "email": user.email},
            secret_key=self._settings.DEMO_JWT_SECRET,
            algorithm=self._settings.DEMO_JWT_ALGORITHM,
            expires_delta=timedelta(minutes=self._settings.DEMO_TOKEN_EXPIRE_MINUTES),
        )
        self._store.active_tokens.add(token)
        return AuthSession(
            user_id=user.user_id,
            email=user.email,
            full_name=user.full_name,
            access_token=token,
        )

    async def sign_in(self, email: str, password: str) -> AuthSession:
        user = self._store.find_user(email)
        if user is None or not await asyncio.to_thread(verify_password, password, user.password_hash):
            raise InvalidCredentialsError(provider=PROVIDER)
        if not user.confirmed:
            raise VerificationPendingError(provider=PROVIDER)
        return self._issue_session(user)

    async def sign_up(self, email: str, password: str, full_name: str) -> SignUpResult:
        if self._store.find_user(email) is not None:
            raise DuplicateEmailError(provider=PROVIDER)
        if len(password) < MIN_PASSWORD_LENGTH:
            raise AuthError(
                f"Password should be at least {MIN_PASSWORD_LENGTH} characters",
                PROVIDER,
            )
        user = await asyncio.to_thread(
            self._store.add_user,
            email,
            password,
            full_name,
            confirmed=self._settings.DEMO_AUTO_CONFIRM,
        )
        session = self._issue_session(user) if user.confirmed else None
        return SignUpResult(user_id=user.user_id, email=user.email, session=session)

    async def sign_out(self, session: Optional[AuthSession] = None) -> None:
        if session is not None:
            self._store.active_tokens.discard(session.access_token)


class DemoClaimsGateway(ClaimsTableGateway):
    """Claims table held in the demo store."""

    def __init__(self, store: DemoStore, table: str):
        self._store = store
        self._table = table

    async def select_all(self, order_by: str = "created_at", descending: bool = True) -> list[dict[str, Any]]:
        rows = self._store.rows(self._table)
        return sorted(rows, key=lambda row: str(row.get(order_by) or ""), reverse=descending)

    async def insert(self, row: dict[str, Any]) -> Optional[dict[str, Any]]:
        missing = [column for column in REQUIRED_CLAIM_COLUMNS if row.get(column) in (None, "")]
        if missing:
            raise InsertError(
                f'null value in column "{missing[0]}" violates not-null constraint',
                PROVIDER,
            )
        if float(row["cost"]) < 0:
            raise InsertError('new row violates check constraint "claims_cost_check"', PROVIDER)
        return self._store.insert_row(self._table, row)


class DemoStorageGateway(ObjectStorageGateway):
    """Document bucket held in the demo store."""

    def __init__(self, store: DemoStore, bucket: str):
        self._store = store
        self._bucket = bucket

    def _key(self, path: str) -> str:
        return f"{self._bucket}/{path}"

    async def upload(self, path: str, content: bytes, content_type: str) -> str:
        self._store.put_object(self._key(path), content, content_type)
        return path

    async def download(self, path: str) -> bytes:
        return self._store.get_object(self._key(path))

    async def create_signed_url(self, path: str, expires_in: int) -> str:
        self._store.get_object(self._key(path))
        return f"memory://{self._bucket}/{path}?expires_in={expires_in}"


class DemoChangeSubscription(ChangeSubscription):
    def __init__(self, store: DemoStore, subscription_id: str):
        self._store = store
        self._subscription_id = subscription_id
        self._active = True

    @property
    def is_active(self) -> bool:
        return self._active

    async def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._store.remove_subscriber(self._subscription_id)


class DemoChangeChannel(ChangeChannelGateway):
    """Change notifications published by the demo store."""

    def __init__(self, store: DemoStore):
        self._store = store

    async def subscribe(
        self,
        table: str,
        event: ChangeEventType,
        callback: ChangeCallback,
    ) -> ChangeSubscription:
        subscription_id = self._store.add_subscriber(_Subscriber(table=table, event=event, callback=callback))
        return DemoChangeSubscription(self._store, subscription_id)


def create_demo_backend(settings: Settings, store: Optional[DemoStore] = None) -> BackendServices:
    """Create demo gateways over a (possibly shared) store."""
    if store is None:
        store = DemoStore(seed_claims=settings.DEMO_SEED_CLAIMS, claims_table=settings.CLAIMS_TABLE)
    return BackendServices(
        mode=BackendMode.DEMO,
        identity=DemoIdentityGateway(store, settings),
        claims=DemoClaimsGateway(store, settings.CLAIMS_TABLE),
        storage=DemoStorageGateway(store, settings.DOCUMENTS_BUCKET),
        changes=DemoChangeChannel(store),
    )
