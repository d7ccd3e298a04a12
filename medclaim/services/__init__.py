"""
Services Layer for the MedClaim client.

Exports the session store, claim repository, change feed, dashboard
controller and the per-session application context.
"""

from medclaim.services.change_feed import ChangeFeedSubscriber
from medclaim.services.claim_repository import ClaimRepository, generate_document_name
from medclaim.services.context import AppContext
from medclaim.services.dashboard import ClaimsDashboard, DashboardSnapshot
from medclaim.services.notifications import Notification, Notifier
from medclaim.services.runtime import BackgroundLoop
from medclaim.services.session_store import SessionStore

__all__ = [
    "AppContext",
    "BackgroundLoop",
    "ChangeFeedSubscriber",
    "ClaimRepository",
    "ClaimsDashboard",
    "DashboardSnapshot",
    "Notification",
    "Notifier",
    "SessionStore",
    "generate_document_name",
]
