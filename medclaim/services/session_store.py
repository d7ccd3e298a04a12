"""
Session Store.

Tracks the authenticated identity for one browser session and performs
sign-in, sign-up and sign-out against the identity gateway.

State Diagram:
    ANONYMOUS -> AUTHENTICATING      (sign_in / sign_up started)
    AUTHENTICATING -> AUTHENTICATED  (provider returned a session)
    AUTHENTICATING -> ANONYMOUS      (failure, or sign-up awaiting verification)
    AUTHENTICATED -> ANONYMOUS       (sign_out)
"""

import threading
from typing import Callable, Optional

from medclaim.core.enums import AuthState
from medclaim.gateways.base import IdentityGateway
from medclaim.schemas.auth import AuthSession, SignUpResult
from medclaim.utils.errors import AuthError
from medclaim.utils.logging import get_logger, mask_email

logger = get_logger(__name__)

SessionListener = Callable[[Optional[AuthSession]], None]


class SessionStore:
    """Current identity plus the auth operations that change it."""

    def __init__(self, identity: IdentityGateway):
        self._identity = identity
        self._lock = threading.RLock()
        self._session: Optional[AuthSession] = None
        self._state = AuthState.ANONYMOUS
        self._listeners: list[SessionListener] = []

    # =========================================================================
    # State
    # =========================================================================

    @property
    def session(self) -> Optional[AuthSession]:
        with self._lock:
            return self._session

    @property
    def state(self) -> AuthState:
        with self._lock:
            return self._state

    @property
    def is_authenticated(self) -> bool:
        return self.state == AuthState.AUTHENTICATED

    def add_listener(self, listener: SessionListener) -> Callable[[], None]:
        """
        Register a callback invoked with the new session (or None) after
        every session change. Returns a function that removes it.
        """
        with self._lock:
            self._listeners.append(listener)

        def remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove

    def _begin(self) -> None:
        with self._lock:
            self._state = AuthState.AUTHENTICATING

    def _settle(self) -> None:
        """Return to the state implied by the current session after a failed attempt."""
        with self._lock:
            self._state = AuthState.AUTHENTICATED if self._session else AuthState.ANONYMOUS

    def _set_session(self, session: Optional[AuthSession]) -> None:
        with self._lock:
            self._session = session
            self._state = AuthState.AUTHENTICATED if session else AuthState.ANONYMOUS
            listeners = list(self._listeners)
        for listener in listeners:
            listener(session)

    # =========================================================================
    # Operations
    # =========================================================================

    async def sign_in(self, email: str, password: str) -> AuthSession:
        """
        Authenticate and make the returned session current.

        Raises:
            AuthError: the current session is left unchanged
        """
        self._begin()
        logger.info(f"Sign-in attempt: {mask_email(email)}")
        try:
            session = await self._identity.sign_in(email, password)
        except AuthError as e:
            self._settle()
            logger.warning(f"Sign-in failed for {mask_email(email)}: {e.message}")
            raise
        except BaseException:
            self._settle()
            raise

        self._set_session(session)
        logger.info(f"Signed in: user_id={session.user_id}")
        return session

    async def sign_up(self, email: str, password: str, full_name: str) -> SignUpResult:
        """
        Create an account.

        When the provider returns a session immediately the store becomes
        authenticated; otherwise the result reports verification_required
        and the store stays anonymous.
        """
        self._begin()
        logger.info(f"Sign-up attempt: {mask_email(email)}")
        try:
            result = await self._identity.sign_up(email, password, full_name)
        except AuthError as e:
            self._settle()
            logger.warning(f"Sign-up failed for {mask_email(email)}: {e.message}")
            raise
        except BaseException:
            self._settle()
            raise

        if result.session is not None:
            self._set_session(result.session)
            logger.info(f"Signed up and signed in: user_id={result.user_id}")
        else:
            self._settle()
            logger.info(f"Signed up, verification pending: user_id={result.user_id}")
        return result

    async def sign_out(self) -> None:
        """
        Clear the current session.

        The session is cleared even when the provider call fails; the
        provider error is re-raised afterwards.
        """
        session = self.session
        try:
            await self._identity.sign_out(session)
        except AuthError as e:
            logger.warning(f"Provider sign-out failed, session cleared locally: {e.message}")
            raise
        finally:
            self._set_session(None)
            if session is not None:
                logger.info(f"Signed out: user_id={session.user_id}")
