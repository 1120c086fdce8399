"""
Storage hygiene tasks.

Expired role assignments and grants are already ignored by every read;
the sweep only keeps the tables small.
"""

import asyncio
from datetime import datetime

import structlog
from celery import shared_task

from authz.core.config import get_settings
from authz.core.errors import StoreUnavailable
from authz.core.interfaces import GrantStore
from authz.utils.context import bind_worker_context
from authz.utils.timezone import utc_now

logger = structlog.get_logger(__name__)


async def purge_expired_grants(grant_store: GrantStore, now: datetime | None = None) -> int:
    """Delete assignments and grants that expired before `now`."""
    now = now or utc_now()
    purged = await grant_store.purge_expired(now)
    logger.info("Expired grants purged", purged=purged, now=now.isoformat())
    return purged


async def _sweep() -> int:
    from authz.implementations.stores import SQLAlchemyGrantStore
    from authz.models.database import close_db, create_engine, create_session_factory

    engine = create_engine(get_settings().database)
    try:
        store = SQLAlchemyGrantStore(create_session_factory(engine))
        return await purge_expired_grants(store)
    finally:
        await close_db(engine)


@shared_task(
    bind=True,
    max_retries=3,
    autoretry_for=(StoreUnavailable,),
    retry_backoff=True,
)
def sweep_expired_grants(self):
    """Periodic sweep of expired role assignments and permission grants."""
    bind_worker_context(self.request.id or "local")

    if get_settings().authz.store_backend != "database":
        logger.info("Sweep skipped, no database store configured")
        return {"status": "skipped", "purged": 0}

    purged = asyncio.run(_sweep())
    return {"status": "completed", "purged": purged}
