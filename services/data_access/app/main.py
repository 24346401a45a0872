"""Data-access client entry point: wires settings, session, cache and resources."""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable

import httpx

from services.data_access.app.auth.session import SessionManager
from services.data_access.app.auth.store import FileSessionStore, SessionStore, StorageKeys
from services.data_access.app.cache.manager import CacheManager
from services.data_access.app.cache.mirror import FileMirror
from services.data_access.app.config import Settings, get_settings
from services.data_access.app.http.client import ApiClient
from services.data_access.app.resources.auth import AuthAPI
from services.data_access.app.resources.reports import ReportsAPI
from shared.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


@dataclass
class DataAccess:
    """Everything a view needs to talk to the upstream API."""

    settings: Settings
    session: SessionManager
    cache: CacheManager
    client: ApiClient
    auth: AuthAPI
    reports: ReportsAPI

    async def close(self) -> None:
        await self.client.close()
        logger.info("data_access_closed")


def create_data_access(
    settings: Settings | None = None,
    store: SessionStore | None = None,
    navigate: Callable[[str], Any] | None = None,
    current_location: Callable[[], str | None] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    configure_logs: bool = True,
) -> DataAccess:
    """Build a fully wired data-access layer.

    Args:
        settings: Client settings (defaults to environment)
        store: Session store (defaults to a file store at settings.session_path)
        navigate: Redirect callback used after an authentication failure
        current_location: Returns the current location, to avoid redirect loops
        transport: httpx transport override
        configure_logs: Configure structlog from settings
    """
    settings = settings or get_settings()
    if configure_logs:
        configure_logging(
            client_name=settings.client_name,
            log_level=settings.log_level,
            json_format=settings.log_json,
        )

    if store is None:
        store = FileSessionStore(settings.session_path, StorageKeys.from_settings(settings))
    session = SessionManager.from_settings(
        settings, store=store, navigate=navigate, current_location=current_location
    )

    mirror = None
    if settings.cache_mirror_enabled:
        try:
            mirror = FileMirror(settings.cache_mirror_path, prefix=settings.cache_mirror_prefix)
        except OSError as e:
            logger.warning("cache_mirror_unavailable", path=settings.cache_mirror_path, error=str(e))
    cache = CacheManager(
        mirror=mirror,
        default_ttl=settings.cache_default_ttl,
        max_size=settings.cache_max_entries,
    )

    client = ApiClient(settings=settings, session=session, transport=transport)
    logger.info(
        "data_access_initialized",
        base_url=settings.base_url,
        environment=settings.environment,
        cache_mirror=mirror is not None,
    )
    return DataAccess(
        settings=settings,
        session=session,
        cache=cache,
        client=client,
        auth=AuthAPI(client),
        reports=ReportsAPI(client, cache=cache),
    )


@asynccontextmanager
async def data_access_context(**kwargs: Any) -> AsyncIterator[DataAccess]:
    """Provide a data-access layer and close it on exit."""
    data_access = create_data_access(**kwargs)
    try:
        yield data_access
    finally:
        await data_access.close()
