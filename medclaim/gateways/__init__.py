"""
Backend Gateways.

``create_backend`` returns the gateways for the configured backend mode:
the in-memory demo backend or the hosted Supabase project.
"""

from typing import Optional

from medclaim.core.config import Settings
from medclaim.core.enums import BackendMode
from medclaim.gateways.base import (
    BackendServices,
    ChangeCallback,
    ChangeChannelGateway,
    ChangeSubscription,
    ClaimsTableGateway,
    IdentityGateway,
    ObjectStorageGateway,
)
from medclaim.gateways.demo_gateway import DemoStore, create_demo_backend


async def create_backend(settings: Settings, store: Optional[DemoStore] = None) -> BackendServices:
    """
    Create the gateways selected by ``settings.BACKEND_MODE``.

    Must be awaited on the event loop that will run every later backend call.
    ``store`` is only used in demo mode.
    """
    if settings.BACKEND_MODE == BackendMode.LIVE:
        from medclaim.gateways.supabase_gateway import create_supabase_backend

        return await create_supabase_backend(settings)
    return create_demo_backend(settings, store)


__all__ = [
    "BackendServices",
    "ChangeCallback",
    "ChangeChannelGateway",
    "ChangeSubscription",
    "ClaimsTableGateway",
    "IdentityGateway",
    "ObjectStorageGateway",
    "DemoStore",
    "create_backend",
    "create_demo_backend",
]
