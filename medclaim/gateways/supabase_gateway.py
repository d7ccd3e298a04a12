"""
Supabase Gateways
Live backend: hosted auth, PostgREST table access, storage and realtime.
Source: https://supabase.com/docs/reference/python/introduction

All gateways share one ``AsyncClient`` per browser session so that the
signed-in user's token authorises table, storage and realtime calls. The
client must be created and used on the same event loop.
"""

from typing import Any, Optional

import httpx
from supabase import (
    AsyncClient,
    AuthError as SupabaseAuthError,
    AuthorizationError,
    NotConnectedError,
    PostgrestAPIError,
    StorageException,
    acreate_client,
)

from medclaim.core.config import Settings
from medclaim.core.enums import BackendMode, ChangeEventType
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
from medclaim.utils.errors import (
    AuthError,
    ConfigurationError,
    DuplicateEmailError,
    FetchError,
    InsertError,
    InvalidCredentialsError,
    UploadError,
    VerificationPendingError,
)
from medclaim.utils.logging import get_logger

logger = get_logger(__name__)

PROVIDER = "supabase"


def _error_message(exc: Exception) -> str:
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(exc)


def translate_auth_error(exc: Exception) -> AuthError:
    """Map a provider auth exception onto the application taxonomy."""
    code = str(getattr(exc, "code", "") or "")
    message = _error_message(exc)
    lowered = message.lower()

    if code == "invalid_credentials" or "invalid login credentials" in lowered:
        return InvalidCredentialsError(message, PROVIDER, exc)
    if code == "email_not_confirmed" or "email not confirmed" in lowered:
        return VerificationPendingError(message, PROVIDER, exc)
    if code in {"user_already_exists", "email_exists"} or "already registered" in lowered:
        return DuplicateEmailError(message, PROVIDER, exc)
    return AuthError(message, PROVIDER, exc)


def _to_session(user: Any, session: Any) -> AuthSession:
    metadata = getattr(user, "user_metadata", None) or {}
    return AuthSession(
        user_id=str(user.id),
        email=user.email,
        full_name=metadata.get("full_name", "") or "",
        access_token=session.access_token,
    )


def parse_change_payload(payload: Any, table: str) -> ChangeEvent:
    """
    Normalise a realtime postgres_changes payload.

    The Python realtime client nests the change under ``data`` with
    ``type``/``record``/``old_record``; the JS-style shape uses
    ``eventType``/``new``/``old`` at the top level. Both are accepted.
    """
    data: dict[str, Any] = {}
    if isinstance(payload, dict):
        nested = payload.get("data")
        data = nested if isinstance(nested, dict) else payload

    raw_type = str(data.get("type") or data.get("eventType") or "*").upper()
    try:
        event_type = ChangeEventType(raw_type)
    except ValueError:
        event_type = ChangeEventType.ALL

    return ChangeEvent(
        event_type=event_type,
        table=str(data.get("table") or table),
        record=data.get("record") or data.get("new") or None,
        old_record=data.get("old_record") or data.get("old") or None,
    )


# =============================================================================
# Identity
# =============================================================================


class SupabaseIdentityGateway(IdentityGateway):
    """Supabase Auth (GoTrue) email/password identity."""

    def __init__(self, client: AsyncClient):
        self._client = client

    async def sign_in(self, email: str, password: str) -> AuthSession:
        try:
            response = await self._client.auth.sign_in_with_password(
                {"email": email, "password": password}
            )
        except SupabaseAuthError as e:
            raise translate_auth_error(e) from e
        except httpx.HTTPError as e:
            raise AuthError(f"Network error while signing in: {e}", PROVIDER, e) from e

        if response.user is None or response.session is None:
            raise VerificationPendingError(provider=PROVIDER)
        return _to_session(response.user, response.session)

    async def sign_up(self, email: str, password: str, full_name: str) -> SignUpResult:
        try:
            response = await self._client.auth.sign_up(
                {
                    "email": email,
                    "password": password,
                    "options": {"data": {"full_name": full_name}},
                }
            )
        except SupabaseAuthError as e:
            raise translate_auth_error(e) from e
        except httpx.HTTPError as e:
            raise AuthError(f"Network error while signing up: {e}", PROVIDER, e) from e

        user = response.user
        if user is None:
            raise AuthError("Sign up did not return a user", PROVIDER)
        # With email confirmation enabled the provider hides duplicates by
        # returning a user without identities instead of an error.
        if user.identities is not None and len(user.identities) == 0:
            raise DuplicateEmailError(provider=PROVIDER)

        session = _to_session(user, response.session) if response.session else None
        return SignUpResult(user_id=str(user.id), email=user.email or email, session=session)

    async def sign_out(self, session: Optional[AuthSession] = None) -> None:
        try:
            await self._client.auth.sign_out()
        except SupabaseAuthError as e:
            raise translate_auth_error(e) from e
        except httpx.HTTPError as e:
            raise AuthError(f"Network error while signing out: {e}", PROVIDER, e) from e


# =============================================================================
# Claims Table
# =============================================================================


class SupabaseClaimsGateway(ClaimsTableGateway):
    """PostgREST access to the claims table."""

    def __init__(self, client: AsyncClient, table: str):
        self._client = client
        self._table = table

    async def select_all(self, order_by: str = "created_at", descending: bool = True) -> list[dict[str, Any]]:
        try:
            response = await (
                self._client.table(self._table)
                .select("*")
                .order(order_by, desc=descending)
                .execute()
            )
        except PostgrestAPIError as e:
            raise FetchError(_error_message(e), PROVIDER, e) from e
        except httpx.HTTPError as e:
            raise FetchError(f"Network error while fetching claims: {e}", PROVIDER, e) from e
        return list(response.data or [])

    async def insert(self, row: dict[str, Any]) -> Optional[dict[str, Any]]:
        try:
            response = await self._client.table(self._table).insert(row).execute()
        except PostgrestAPIError as e:
            raise InsertError(_error_message(e), PROVIDER, e) from e
        except httpx.HTTPError as e:
            raise InsertError(f"Network error while saving claim: {e}", PROVIDER, e) from e
        data = response.data or []
        return data[0] if data else None


# =============================================================================
# Storage
# =============================================================================


class SupabaseStorageGateway(ObjectStorageGateway):
    """Supabase Storage bucket."""

    def __init__(self, client: AsyncClient, bucket: str):
        self._client = client
        self._bucket = bucket

    async def upload(self, path: str, content: bytes, content_type: str) -> str:
        try:
            response = await self._client.storage.from_(self._bucket).upload(
                path=path,
                file=content,
                file_options={"content-type": content_type},
            )
        except StorageException as e:
            raise UploadError(_error_message(e), PROVIDER, e) from e
        except httpx.HTTPError as e:
            raise UploadError(f"Network error while uploading: {e}", PROVIDER, e) from e
        # storage3 returns an UploadResponse with .path; older releases
        # returned the raw httpx response.
        return getattr(response, "path", None) or path

    async def download(self, path: str) -> bytes:
        try:
            return await self._client.storage.from_(self._bucket).download(path)
        except (StorageException, httpx.HTTPError) as e:
            raise FetchError(f"Failed to download document: {_error_message(e)}", PROVIDER, e) from e

    async def create_signed_url(self, path: str, expires_in: int) -> str:
        try:
            response = await self._client.storage.from_(self._bucket).create_signed_url(path, expires_in)
        except (StorageException, httpx.HTTPError) as e:
            raise FetchError(f"Failed to create document link: {_error_message(e)}", PROVIDER, e) from e
        url = response.get("signedURL") or response.get("signedUrl")
        if not url:
            raise FetchError("Storage did not return a signed URL", PROVIDER)
        return url


# =============================================================================
# Realtime
# =============================================================================


class SupabaseChangeSubscription(ChangeSubscription):
    """An open realtime channel."""

    def __init__(self, client: AsyncClient, channel: Any, topic: str):
        self._client = client
        self._channel = channel
        self._topic = topic
        self._active = True

    @property
    def is_active(self) -> bool:
        return self._active

    async def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        await self._client.remove_channel(self._channel)
        logger.info(f"Realtime channel closed: {self._topic}")


class SupabaseChangeChannel(ChangeChannelGateway):
    """Supabase Realtime postgres_changes listener."""

    def __init__(self, client: AsyncClient, channel_name: str, schema: str = "public"):
        self._client = client
        self._channel_name = channel_name
        self._schema = schema

    async def subscribe(
        self,
        table: str,
        event: ChangeEventType,
        callback: ChangeCallback,
    ) -> ChangeSubscription:
        def _handle(payload: Any) -> None:
            callback(parse_change_payload(payload, table))

        channel = self._client.channel(self._channel_name)
        channel.on_postgres_changes(event.value, callback=_handle, table=table, schema=self._schema)
        try:
            await channel.subscribe()
        except (NotConnectedError, AuthorizationError, OSError) as e:
            raise FetchError(f"Unable to subscribe to claim updates: {e}", PROVIDER, e) from e

        logger.info(f"Realtime channel open: {self._channel_name} ({self._schema}.{table}, {event.value})")
        return SupabaseChangeSubscription(self._client, channel, self._channel_name)


# =============================================================================
# Factory
# =============================================================================


async def create_supabase_backend(settings: Settings) -> BackendServices:
    """
    Create the live gateways.

    Must be awaited on the event loop that will run every later call.
    """
    if not (settings.SUPABASE_URL and settings.SUPABASE_ANON_KEY):
        raise ConfigurationError("SUPABASE_URL and SUPABASE_ANON_KEY must be set for live mode")

    client = await acreate_client(settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY)
    logger.info(f"Supabase client initialized: {settings.SUPABASE_URL}")

    return BackendServices(
        mode=BackendMode.LIVE,
        identity=SupabaseIdentityGateway(client),
        claims=SupabaseClaimsGateway(client, settings.CLAIMS_TABLE),
        storage=SupabaseStorageGateway(client, settings.DOCUMENTS_BUCKET),
        changes=SupabaseChangeChannel(client, settings.REALTIME_CHANNEL, settings.CLAIMS_SCHEMA),
        closer=client.remove_all_channels,
    )
