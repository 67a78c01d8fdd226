"""Marketplace wiring for the backend.

One Marketplace per process, built from settings: SQLite storage, the
Supabase identity directory when Supabase is configured, Resend email and
the CQC registry.
"""

from typing import Annotated

from fastapi import Depends

from carefayre.email import ResendEmailGateway
from carefayre.identity import InMemoryIdentityDirectory, SupabaseIdentityDirectory
from carefayre.marketplace import Marketplace
from carefayre.registry import CQCRegistry
from carefayre.storage.sqlite import SQLiteMarketplaceStorage
from carefayre.timesheets.expiry import AdvisoryExpiryPolicy, AutoSettleExpiryPolicy
from supabase import Client, create_client

from .config import Settings, get_settings
from .logging_config import get_logger

logger = get_logger("carefayre.database")

_supabase_client: Client | None = None
_marketplace: Marketplace | None = None

EXPIRY_POLICIES = {
    "advisory": AdvisoryExpiryPolicy,
    "auto_settle": AutoSettleExpiryPolicy,
}


def get_supabase_client(settings: Settings | None = None) -> Client:
    """Get cached Supabase client."""
    global _supabase_client
    if _supabase_client is None:
        if settings is None:
            settings = get_settings()
        # Prefer new secret key, fall back to legacy service_role_key
        api_key = settings.supabase_secret_key or settings.supabase_service_role_key
        if not settings.supabase_url or not api_key:
            raise ValueError("SUPABASE_URL and SUPABASE_SECRET_KEY must be set")
        _supabase_client = create_client(settings.supabase_url, api_key)
    return _supabase_client


def build_identity(settings: Settings):
    """Supabase-backed directory when configured, else an empty in-memory one."""
    if settings.supabase_url:
        return SupabaseIdentityDirectory(get_supabase_client(settings))
    logger.warning("SUPABASE_URL not set; using an in-memory identity directory")
    return InMemoryIdentityDirectory()


def build_marketplace(settings: Settings) -> Marketplace:
    identity = build_identity(settings)
    email = None
    if settings.resend_api_key:
        email = ResendEmailGateway(settings.resend_api_key, identity, from_address=settings.email_from)
    else:
        logger.warning("RESEND_API_KEY not set; emails will not be sent")

    policy_cls = EXPIRY_POLICIES.get(settings.query_expiry_policy)
    if policy_cls is None:
        raise ValueError(f"Unknown QUERY_EXPIRY_POLICY: {settings.query_expiry_policy}")

    return Marketplace(
        SQLiteMarketplaceStorage(settings.database_path),
        identity,
        config=settings.marketplace_config(),
        email=email,
        registry=CQCRegistry(settings.cqc_api_base, settings.cqc_partner_code),
        expiry_policy=policy_cls(),
    )


def get_marketplace(settings: Annotated[Settings, Depends(get_settings)]) -> Marketplace:
    """FastAPI dependency for the process-wide Marketplace."""
    global _marketplace
    if _marketplace is None:
        _marketplace = build_marketplace(settings)
    return _marketplace


# Type alias for dependency injection
Market = Annotated[Marketplace, Depends(get_marketplace)]
