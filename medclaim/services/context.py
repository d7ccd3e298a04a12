"""
Application Context.

One ``AppContext`` per browser session. It holds the backend gateways, the
session store, the claim repository, the notifier and (while a user is
signed in) the claims dashboard, and runs their coroutines on a background
loop that is normally shared by every session of the server. The Streamlit
shell keeps it in ``st.session_state`` and calls the synchronous methods
below; each converts errors into notifications and reports success as a bool.
"""

import weakref
from typing import Any, Optional

from medclaim.core.config import Settings
from medclaim.gateways import DemoStore, create_backend
from medclaim.gateways.base import BackendServices
from medclaim.schemas.auth import AuthSession
from medclaim.schemas.claim import DocumentUpload
from medclaim.services.claim_repository import ClaimRepository
from medclaim.services.dashboard import ClaimsDashboard, DashboardSnapshot
from medclaim.services.forms import LoginForm, NewClaimForm, SignupForm, validate_document, validate_form
from medclaim.services.notifications import Notifier
from medclaim.services.runtime import BackgroundLoop
from medclaim.services.session_store import SessionStore
from medclaim.utils.errors import (
    AuthError,
    FetchError,
    FormValidationError,
    InsertError,
    UploadError,
)
from medclaim.utils.logging import get_logger

logger = get_logger(__name__)

# Notification text shown to the user
LOGIN_SUCCESS = "Logged in successfully!"
SIGNUP_SUCCESS = "Account created successfully! Please check your email for verification."
LOGOUT_SUCCESS = "Logged out successfully!"
CLAIM_SUBMITTED = "Claim submitted successfully"
CLAIM_FAILED = "Failed to submit claim"
UPLOAD_FAILED = "Failed to upload document"
ABHA_VERIFYING = "Verification in progress..."


class _SessionResources:
    """Backend-side objects a context must release when it goes away."""

    def __init__(self, backend: BackendServices):
        self.backend = backend
        self.dashboard: Optional[ClaimsDashboard] = None


def _release_resources(resources: _SessionResources, loop: BackgroundLoop) -> None:
    """Finalizer for contexts dropped without ``close()``; must not reference the context."""
    dashboard, resources.dashboard = resources.dashboard, None
    if dashboard is not None:
        dashboard.deactivate()
    if not loop.is_running:
        return
    if dashboard is not None:
        loop.submit(dashboard.unmount())
    loop.submit(resources.backend.close())
    logger.info("Released resources of a discarded session")


class AppContext:
    """
    Explicitly scoped state and actions for one browser session.

    Contexts normally share one background loop. Nothing on that loop holds
    a strong reference to the context, so when Streamlit drops a session the
    context is collected and its dashboard and subscription are released.
    """

    def __init__(
        self,
        settings: Settings,
        backend: BackendServices,
        loop: BackgroundLoop,
        notifier: Optional[Notifier] = None,
        owns_loop: bool = False,
    ):
        self.settings = settings
        self.backend = backend
        self.loop = loop
        self.notifier = notifier or Notifier()
        self.session_store = SessionStore(backend.identity)
        self.repository = ClaimRepository(
            backend.claims,
            backend.storage,
            signed_url_ttl=settings.SIGNED_URL_TTL_SECONDS,
        )
        self._resources = _SessionResources(backend)
        self._owns_loop = owns_loop
        self._closed = False
        self._finalizer = weakref.finalize(self, _release_resources, self._resources, loop)
        self._finalizer.atexit = False

        context_ref = weakref.ref(self)

        def on_session_change(session: Optional[AuthSession]) -> None:
            context = context_ref()
            if context is not None:
                context._on_session_change(session)

        self.session_store.add_listener(on_session_change)

    @classmethod
    def create(
        cls,
        settings: Settings,
        store: Optional[DemoStore] = None,
        loop: Optional[BackgroundLoop] = None,
    ) -> "AppContext":
        """
        Connect the configured backend on ``loop``.

        Without a loop a private one is started and stopped by ``close()``.
        """
        owns_loop = loop is None
        if loop is None:
            loop = BackgroundLoop().start()
        try:
            backend = loop.run(create_backend(settings, store))
        except Exception:
            if owns_loop:
                loop.stop()
            raise
        logger.info(f"App context created: backend={backend.mode.value}")
        return cls(settings, backend, loop, owns_loop=owns_loop)

    @property
    def dashboard(self) -> Optional[ClaimsDashboard]:
        return self._resources.dashboard

    @dashboard.setter
    def dashboard(self, value: Optional[ClaimsDashboard]) -> None:
        self._resources.dashboard = value

    # =========================================================================
    # Session
    # =========================================================================

    @property
    def session(self) -> Optional[AuthSession]:
        return self.session_store.session

    @property
    def is_authenticated(self) -> bool:
        return self.session_store.is_authenticated

    def _on_session_change(self, session: Optional[AuthSession]) -> None:
        if session is not None or self.dashboard is None:
            return
        dashboard, self.dashboard = self.dashboard, None
        dashboard.deactivate()
        if self.loop.is_running:
            self.loop.submit(dashboard.unmount())

    def sign_in(self, email: str, password: str) -> bool:
        try:
            form = validate_form(LoginForm, {"email": email, "password": password})
            self.loop.run(self.session_store.sign_in(str(form.email), form.password))
        except FormValidationError as e:
            self._report_form_errors(e)
            return False
        except AuthError as e:
            self.notifier.error(e.message)
            return False
        self.notifier.success(LOGIN_SUCCESS)
        self.ensure_dashboard()
        return True

    def sign_up(self, full_name: str, email: str, password: str) -> bool:
        try:
            form = validate_form(SignupForm, {"full_name": full_name, "email": email, "password": password})
            self.loop.run(self.session_store.sign_up(str(form.email), form.password, form.full_name))
        except FormValidationError as e:
            self._report_form_errors(e)
            return False
        except AuthError as e:
            self.notifier.error(e.message)
            return False
        self.notifier.success(SIGNUP_SUCCESS)
        self.ensure_dashboard()
        return True

    def sign_out(self) -> bool:
        """Sign out. The local session is cleared even if the provider call fails."""
        try:
            self.loop.run(self.session_store.sign_out())
        except AuthError as e:
            self.notifier.error(e.message)
            return False
        self.notifier.success(LOGOUT_SUCCESS)
        return True

    # =========================================================================
    # Claims
    # =========================================================================

    def ensure_dashboard(self) -> Optional[ClaimsDashboard]:
        """Mount the dashboard if a user is signed in and it is not mounted yet."""
        if not self.is_authenticated:
            return None
        if self.dashboard is None:
            dashboard = ClaimsDashboard(
                self.repository,
                self.backend.changes,
                self.notifier,
                table=self.settings.CLAIMS_TABLE,
            )
            self.dashboard = dashboard
            self.loop.run(dashboard.mount())
        return self.dashboard

    def snapshot(self) -> Optional[DashboardSnapshot]:
        return self.dashboard.snapshot() if self.dashboard is not None else None

    def refresh_claims(self) -> None:
        dashboard = self.ensure_dashboard()
        if dashboard is not None:
            self.loop.run(dashboard.refresh())

    def submit_claim(
        self,
        patient_name: Any,
        diagnosis: Any,
        treatment: Any,
        cost: Any,
        document: Optional[DocumentUpload] = None,
    ) -> bool:
        """Validate the New Claim form and submit it. Returns True on success."""
        dashboard = self.ensure_dashboard()
        if dashboard is None:
            self.notifier.error("Please log in to submit a claim")
            return False
        try:
            form = validate_form(
                NewClaimForm,
                {
                    "patient_name": patient_name,
                    "diagnosis": diagnosis,
                    "treatment": treatment,
                    "cost": cost,
                    "document": document,
                },
            )
            validate_document(form.document, self.settings.ALLOWED_DOCUMENT_TYPES)
            self.loop.run(dashboard.submit_claim(form.to_claim(), form.document))
        except FormValidationError as e:
            self._report_form_errors(e)
            return False
        except UploadError as e:
            logger.error(f"Document upload failed: {e.message}")
            self.notifier.error(UPLOAD_FAILED)
            return False
        except InsertError as e:
            logger.error(f"Claim insert failed: {e.message}")
            self.notifier.error(CLAIM_FAILED)
            return False
        self.notifier.success(CLAIM_SUBMITTED)
        return True

    def document_link(self, path: str) -> Optional[str]:
        try:
            return self.loop.run(self.repository.document_link(path))
        except FetchError as e:
            logger.warning(f"Document link unavailable for {path}: {e.message}")
            return None

    def download_document(self, path: str) -> Optional[bytes]:
        try:
            return self.loop.run(self.repository.download_document(path))
        except FetchError as e:
            logger.warning(f"Document download failed for {path}: {e.message}")
            self.notifier.error("Failed to download document")
            return None

    def verify_abha(self, abha_number: str) -> None:
        if not (abha_number or "").strip():
            self.notifier.error("Enter an ABHA number to verify")
            return
        self.notifier.info(ABHA_VERIFYING)

    def _report_form_errors(self, error: FormValidationError) -> None:
        for message in error.errors or [error.message]:
            self.notifier.error(message)

    # =========================================================================
    # Teardown
    # =========================================================================

    def close(self) -> None:
        """Unmount the dashboard and release provider connections.

        The loop is stopped only when this context started it.
        """
        if self._closed:
            return
        self._closed = True
        self._finalizer.detach()
        dashboard, self.dashboard = self.dashboard, None
        if dashboard is not None and self.loop.is_running:
            self.loop.run(dashboard.unmount())
        if self.loop.is_running:
            self.loop.run(self.backend.close())
        if self._owns_loop:
            self.loop.stop()
        logger.info("App context closed")
