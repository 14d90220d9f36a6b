"""Assembly of the NFT catalog service and its external clients."""

from __future__ import annotations

from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator

import httpx

from .config import Settings, get_settings
from .database import Database
from .services.indexer import IndexerClient
from .services.nft_service import NFTService


@asynccontextmanager
async def open_service(settings: Settings | None = None) -> AsyncIterator[NFTService]:
    """Yield a ready :class:`NFTService`, releasing its clients on exit."""

    resolved = settings or get_settings()
    exit_stack = AsyncExitStack()
    indexer_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            timeout=httpx.Timeout(resolved.indexer_timeout, connect=10.0),
        )
    )
    database = Database(resolved.database_url)
    exit_stack.push_async_callback(database.dispose)
    try:
        await database.create_all()
        indexer = IndexerClient(resolved, indexer_http_client)
        yield NFTService(resolved, indexer, database.session_factory)
    finally:
        await exit_stack.aclose()
