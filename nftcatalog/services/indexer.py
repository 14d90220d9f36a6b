"""Utilities for communicating with the blockchain indexer."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

import httpx
from pydantic import ValidationError

from .. import queries
from ..config import Settings
from ..errors import FailureKind, IndexerError
from ..models import NFTNode, PaginationWindow

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class NFTPage:
    """Container for a page of indexer nodes and the reported page metadata."""

    nodes: list[NFTNode] = field(default_factory=list)
    has_next_page: bool = False
    has_previous_page: bool = False
    total_count: int = 0


class IndexerClient:
    """Thin wrapper around the indexer GraphQL endpoint."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client
        self._url = str(settings.indexer_url)
        self._max_retries = settings.indexer_max_retries
        self._page_size = settings.indexer_page_size

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": f"{self._settings.app_name} (nftcatalog)",
        }

    async def execute(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """Run ``query`` and return its ``data`` payload."""

        attempt = 0
        while True:
            try:
                response = await self._client.post(
                    self._url,
                    json={"query": query, "variables": variables},
                    headers=self._headers(),
                )
            except httpx.HTTPError as exc:
                attempt += 1
                if attempt <= self._max_retries:
                    backoff = min(2 ** (attempt - 1), 5) + (0.1 * attempt)
                    logger.info(
                        "Transient error talking to the indexer (%s). Retrying in %.1fs",
                        exc.__class__.__name__,
                        backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                logger.warning("Indexer unreachable: %s", exc)
                raise IndexerError(
                    f"Indexer unreachable: {exc}", FailureKind.UPSTREAM_UNAVAILABLE
                ) from exc

            if 500 <= response.status_code < 600:
                attempt += 1
                if attempt <= self._max_retries:
                    backoff = min(2 ** (attempt - 1), 5) + (0.1 * attempt)
                    logger.info(
                        "Indexer returned %s. Retrying in %.1fs",
                        response.status_code,
                        backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                logger.warning("Indexer failed with %s: %s", response.status_code, response.text)
                raise IndexerError(
                    f"Indexer responded with {response.status_code}",
                    FailureKind.UPSTREAM_UNAVAILABLE,
                )
            break

        if response.status_code >= 400:
            logger.warning("Indexer rejected query with %s: %s", response.status_code, response.text)
            raise IndexerError(
                f"Indexer rejected query with {response.status_code}",
                FailureKind.QUERY_MALFORMED,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise IndexerError(
                "Unexpected non-JSON indexer response", FailureKind.QUERY_MALFORMED
            ) from exc
        if not isinstance(payload, dict):
            raise IndexerError(
                "Unexpected indexer response structure", FailureKind.QUERY_MALFORMED
            )

        errors = payload.get("errors")
        if errors:
            messages = "; ".join(
                str(error.get("message", error)) if isinstance(error, dict) else str(error)
                for error in errors
            )
            logger.warning("Indexer returned GraphQL errors: %s", messages)
            raise IndexerError(f"GraphQL errors: {messages}", FailureKind.QUERY_MALFORMED)

        data = payload.get("data")
        if not isinstance(data, dict):
            raise IndexerError("Indexer response carries no data", FailureKind.QUERY_MALFORMED)
        return data

    async def fetch_page(self, query: str, variables: dict[str, Any]) -> NFTPage:
        """Run an ``nftEntities`` query and normalise the result."""

        data = await self.execute(query, variables)
        entities = data.get("nftEntities")
        if not isinstance(entities, dict):
            raise IndexerError(
                "Indexer response is missing nftEntities", FailureKind.QUERY_MALFORMED
            )
        raw_nodes = entities.get("nodes") or []
        page_info = entities.get("pageInfo") or {}
        if not isinstance(raw_nodes, list) or not isinstance(page_info, dict):
            raise IndexerError(
                "Unexpected nftEntities structure", FailureKind.QUERY_MALFORMED
            )
        try:
            nodes = [NFTNode.model_validate(node) for node in raw_nodes]
        except ValidationError as exc:
            raise IndexerError(
                "Indexer returned malformed NFT nodes", FailureKind.QUERY_MALFORMED
            ) from exc
        total = entities.get("totalCount")
        try:
            total_count = int(total) if total is not None else len(nodes)
        except (TypeError, ValueError) as exc:
            raise IndexerError(
                f"Indexer returned a non-numeric totalCount: {total!r}",
                FailureKind.QUERY_MALFORMED,
            ) from exc
        return NFTPage(
            nodes=nodes,
            has_next_page=bool(page_info.get("hasNextPage", False)),
            has_previous_page=bool(page_info.get("hasPreviousPage", False)),
            total_count=total_count,
        )

    async def fetch_all(self, query: str, variables: dict[str, Any]) -> NFTPage:
        """Drain a paginated query in ``INDEXER_PAGE_SIZE`` batches."""

        collected: list[NFTNode] = []
        offset = 0
        total = 0
        while True:
            page = await self.fetch_page(
                query, {**variables, "limit": self._page_size, "offset": offset}
            )
            collected.extend(page.nodes)
            total = page.total_count
            if not page.has_next_page or not page.nodes:
                break
            offset += len(page.nodes)
        return NFTPage(
            nodes=collected,
            has_next_page=False,
            has_previous_page=False,
            total_count=total or len(collected),
        )

    async def _fetch(
        self, query: str, variables: dict[str, Any], window: PaginationWindow | None
    ) -> NFTPage:
        if window is None:
            return await self.fetch_all(query, variables)
        return await self.fetch_page(
            query, {**variables, "limit": window.limit, "offset": window.offset}
        )

    async def fetch_nfts_by_ids(
        self,
        ids: Sequence[str],
        *,
        listed: bool | None = None,
        window: PaginationWindow | None = None,
    ) -> NFTPage:
        """Fetch exactly the NFTs in ``ids``; an empty set yields an empty page."""

        if not ids:
            return NFTPage(has_previous_page=window is not None and window.page > 1)
        query = queries.nfts_query(include=True, listed=listed, paginated=True)
        return await self._fetch(
            query, queries.variables(ids=ids, listed=listed), window
        )

    async def fetch_nfts_not_in_ids(
        self,
        ids: Sequence[str],
        *,
        listed: bool | None = None,
        window: PaginationWindow | None = None,
    ) -> NFTPage:
        """Fetch every NFT except those in ``ids``; an empty set means no exclusion."""

        query = queries.nfts_query(include=False, listed=listed, paginated=True)
        return await self._fetch(
            query, queries.variables(exclude_ids=ids, listed=listed), window
        )

    async def fetch_serie(self, serie_id: str) -> NFTPage:
        """Return every node of ``serie_id``."""

        query = queries.serie_query(ids_only=False, paginated=True)
        return await self.fetch_all(query, queries.variables(serie_id=serie_id))

    async def fetch_serie_ids(self, serie_id: str) -> NFTPage:
        """Return the members of ``serie_id`` with only their ids populated."""

        query = queries.serie_query(ids_only=True, paginated=True)
        return await self.fetch_all(query, queries.variables(serie_id=serie_id))
