"""
Unit Tests for the per-session Application Context
"""

import gc
import threading
import time
import weakref

import pytest

from medclaim.core.enums import NotificationLevel
from medclaim.schemas.claim import DocumentUpload
from medclaim.services.context import (
    ABHA_VERIFYING,
    CLAIM_FAILED,
    CLAIM_SUBMITTED,
    LOGIN_SUCCESS,
    LOGOUT_SUCCESS,
    SIGNUP_SUCCESS,
    UPLOAD_FAILED,
    AppContext,
)
from medclaim.services.runtime import BackgroundLoop
from medclaim.utils.errors import AuthError, InsertError, UploadError


@pytest.fixture
def ctx(test_settings, demo_store):
    context = AppContext.create(test_settings, demo_store)
    yield context
    context.close()


def messages(context, level=None):
    return [n.message for n in context.notifier.drain() if level is None or n.level == level]


@pytest.fixture
def signed_in(ctx, registered_user):
    assert ctx.sign_in(registered_user.email, "secret123")
    ctx.notifier.drain()
    return ctx


@pytest.mark.unit
class TestAuthActions:
    def test_sign_in_mounts_dashboard(self, ctx, registered_user):
        assert ctx.sign_in(registered_user.email, "secret123") is True

        assert ctx.is_authenticated
        assert ctx.dashboard is not None and ctx.dashboard.is_mounted
        assert messages(ctx) == [LOGIN_SUCCESS]

    def test_sign_in_invalid_credentials(self, ctx, registered_user):
        assert ctx.sign_in(registered_user.email, "wrong-password") is False

        assert ctx.session is None
        assert ctx.dashboard is None
        assert messages(ctx, NotificationLevel.ERROR) == ["Invalid login credentials"]

    def test_sign_in_form_errors(self, ctx):
        assert ctx.sign_in("not-an-email", "") is False

        assert messages(ctx, NotificationLevel.ERROR) == [
            "Enter a valid email address",
            "Password is required",
        ]

    def test_sign_up(self, ctx):
        assert ctx.sign_up("New User", "new@medclaim.in", "secret123") is True

        assert messages(ctx) == [SIGNUP_SUCCESS]
        assert ctx.session.full_name == "New User"

    def test_duplicate_sign_up(self, ctx, demo_store):
        demo_store.add_user("a@x.com", "longenough", "A", confirmed=True)

        assert ctx.sign_up("A", "a@x.com", "pw") is False

        assert ctx.session is None
        assert messages(ctx, NotificationLevel.ERROR) == ["User already registered"]

    def test_sign_out_clears_dashboard(self, signed_in, demo_store):
        assert signed_in.sign_out() is True

        assert signed_in.session is None
        assert signed_in.dashboard is None
        assert signed_in.snapshot() is None
        assert messages(signed_in) == [LOGOUT_SUCCESS]

    def test_sign_out_provider_failure(self, signed_in, monkeypatch):
        async def failing_sign_out(session=None):
            raise AuthError("Session expired", "demo")

        monkeypatch.setattr(signed_in.backend.identity, "sign_out", failing_sign_out)

        assert signed_in.sign_out() is False

        assert signed_in.session is None
        assert signed_in.dashboard is None
        assert messages(signed_in, NotificationLevel.ERROR) == ["Session expired"]


@pytest.mark.unit
class TestClaimActions:
    def test_submit_requires_sign_in(self, ctx):
        assert ctx.submit_claim("Asha Rao", "Fracture", "Cast", 5000) is False
        assert messages(ctx, NotificationLevel.ERROR) == ["Please log in to submit a claim"]

    def test_submit_claim(self, signed_in):
        assert signed_in.submit_claim("Asha Rao", "Fracture", "Cast", 5000) is True

        snapshot = signed_in.snapshot()
        assert [claim.patient_name for claim in snapshot.claims] == ["Asha Rao"]
        assert snapshot.claims[0].document_url is None
        assert messages(signed_in) == [CLAIM_SUBMITTED]

    def test_submit_with_document(self, signed_in):
        upload = DocumentUpload(filename="bill.pdf", content=b"%PDF-1.4", content_type="application/pdf")

        assert signed_in.submit_claim("Asha Rao", "Fracture", "Cast", "5,000", upload) is True

        claim = signed_in.snapshot().claims[0]
        assert signed_in.download_document(claim.document_url) == b"%PDF-1.4"
        assert signed_in.document_link(claim.document_url).startswith("memory://")

    def test_submit_validation_errors(self, signed_in):
        assert signed_in.submit_claim("", "Fracture", "Cast", -5) is False

        assert messages(signed_in, NotificationLevel.ERROR) == [
            "Patient name is required",
            "Cost cannot be negative",
        ]
        assert signed_in.snapshot().claims == ()

    def test_submit_rejects_document_type(self, signed_in):
        upload = DocumentUpload(filename="notes.docx", content=b"doc")

        assert signed_in.submit_claim("Asha Rao", "Fracture", "Cast", 5000, upload) is False
        assert "Supporting document" in messages(signed_in, NotificationLevel.ERROR)[0]

    def test_upload_failure(self, signed_in, monkeypatch):
        async def failing_upload(path, content, content_type):
            raise UploadError("Bucket not found", "demo")

        monkeypatch.setattr(signed_in.backend.storage, "upload", failing_upload)
        upload = DocumentUpload(filename="bill.pdf", content=b"%PDF")

        assert signed_in.submit_claim("Asha Rao", "Fracture", "Cast", 5000, upload) is False
        assert messages(signed_in, NotificationLevel.ERROR) == [UPLOAD_FAILED]

    def test_insert_failure(self, signed_in, monkeypatch):
        async def failing_insert(row):
            raise InsertError("permission denied", "demo")

        monkeypatch.setattr(signed_in.backend.claims, "insert", failing_insert)

        assert signed_in.submit_claim("Asha Rao", "Fracture", "Cast", 5000) is False
        assert messages(signed_in, NotificationLevel.ERROR) == [CLAIM_FAILED]

    def test_missing_document(self, signed_in):
        assert signed_in.download_document("missing.pdf") is None
        assert signed_in.document_link("missing.pdf") is None

    def test_refresh_claims(self, signed_in, demo_store):
        demo_store.insert_row(
            "claims",
            {"patient_name": "Direct", "diagnosis": "d", "treatment": "t", "cost": 1, "document_url": None},
        )

        signed_in.refresh_claims()

        assert "Direct" in [claim.patient_name for claim in signed_in.snapshot().claims]


@pytest.mark.unit
class TestAbhaSearch:
    def test_verify(self, ctx):
        ctx.verify_abha("12-3456-7890-1234")

        assert messages(ctx, NotificationLevel.INFO) == [ABHA_VERIFYING]

    def test_verify_empty(self, ctx):
        ctx.verify_abha("  ")

        assert messages(ctx, NotificationLevel.ERROR) == ["Enter an ABHA number to verify"]


@pytest.mark.unit
def test_close_is_idempotent(test_settings, demo_store, registered_user):
    context = AppContext.create(test_settings, demo_store)
    context.sign_in(registered_user.email, "secret123")

    context.close()
    context.close()

    assert demo_store.subscriber_count == 0
    assert context.loop.is_running is False


@pytest.fixture
def shared_loop():
    loop = BackgroundLoop(name="medclaim-loop").start()
    yield loop
    loop.stop()


def poll(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met before timeout")
        time.sleep(0.01)


def loop_threads():
    return [thread for thread in threading.enumerate() if thread.name == "medclaim-loop"]


@pytest.mark.unit
class TestSharedLoop:
    def test_contexts_share_one_thread(self, test_settings, demo_store, shared_loop):
        before = len(loop_threads())

        contexts = [AppContext.create(test_settings, demo_store, loop=shared_loop) for _ in range(5)]

        assert len(loop_threads()) == before
        assert all(context.loop is shared_loop for context in contexts)
        for context in contexts:
            context.close()

    def test_close_leaves_shared_loop_running(self, test_settings, demo_store, registered_user, shared_loop):
        context = AppContext.create(test_settings, demo_store, loop=shared_loop)
        context.sign_in(registered_user.email, "secret123")

        context.close()

        assert demo_store.subscriber_count == 0
        assert shared_loop.is_running is True

    def test_discarded_context_releases_subscription(self, test_settings, demo_store, registered_user, shared_loop):
        context = AppContext.create(test_settings, demo_store, loop=shared_loop)
        assert context.sign_in(registered_user.email, "secret123")
        assert demo_store.subscriber_count == 1
        context_ref = weakref.ref(context)

        del context
        gc.collect()

        assert context_ref() is None
        poll(lambda: demo_store.subscriber_count == 0)
        assert shared_loop.is_running is True

    def test_discarded_sessions_do_not_accumulate(self, test_settings, demo_store, registered_user, shared_loop):
        before = len(loop_threads())
        for _ in range(5):
            context = AppContext.create(test_settings, demo_store, loop=shared_loop)
            context.sign_in(registered_user.email, "secret123")
            del context
        gc.collect()

        poll(lambda: demo_store.subscriber_count == 0)
        assert len(loop_threads()) == before
