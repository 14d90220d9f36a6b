"""High level orchestration of NFT listings across the indexer and local store."""

from __future__ import annotations

import logging
from typing import Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import Settings
from ..errors import FailureKind, IndexerError, NFTServiceError, classify_failure
from ..grouping import group_nfts
from ..models import (
    DistributionResult,
    NFTNode,
    PageResult,
    PaginationSource,
    PaginationWindow,
    PopulatedNFT,
)
from .categories import CategoryResolution, CategoryService
from .distribution import DistributionEngine
from .indexer import IndexerClient, NFTPage
from .population import NFTPopulator

logger = logging.getLogger(__name__)

LISTING_FAILURE = "Couldn't get NFTs"
SERIE_FAILURE = "Couldn't get serie NFTs"
UPSTREAM_ERRORS = (IndexerError, SQLAlchemyError, OSError)


class NFTService:
    """Compose indexer NFTs with local metadata into listings and pages."""

    def __init__(
        self,
        settings: Settings,
        indexer: IndexerClient,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        categories: CategoryService | None = None,
        populator: NFTPopulator | None = None,
        distribution: DistributionEngine | None = None,
    ) -> None:
        self._settings = settings
        self._indexer = indexer
        self._categories = categories or CategoryService(session_factory)
        self._populator = populator or NFTPopulator(
            session_factory, concurrency=settings.population_concurrency
        )
        self._distribution = distribution or DistributionEngine(
            settings, self.get_series_nft_ids
        )

    # -------- helpers --------
    def _window(self, page: int, limit: int | None) -> PaginationWindow:
        resolved_limit = self._settings.default_page_limit if limit is None else limit
        if resolved_limit > self._settings.max_page_limit:
            raise ValueError(
                f"limit must not exceed {self._settings.max_page_limit}"
            )
        return PaginationWindow(page=page, limit=resolved_limit)

    @staticmethod
    def _failure(message: str, exc: BaseException) -> NFTServiceError:
        kind = classify_failure(exc)
        logger.warning("%s: %s (%s)", message, exc, kind.value)
        return NFTServiceError(message, kind, exc)

    async def _compose(self, nodes: Sequence[NFTNode]) -> list[PopulatedNFT]:
        return await self._populator.populate_all(group_nfts(nodes))

    async def _indexer_page(self, page: NFTPage) -> PageResult[PopulatedNFT]:
        return PageResult[PopulatedNFT](
            data=await self._compose(page.nodes),
            has_next_page=page.has_next_page,
            has_previous_page=page.has_previous_page,
            total_count=page.total_count,
            source=PaginationSource.INDEXER,
        )

    async def _resolve(
        self, codes: Sequence[str], strict: bool | None
    ) -> CategoryResolution:
        resolution = await self._categories.resolve_codes(codes)
        enforce = self._settings.strict_categories if strict is None else strict
        if enforce and resolution.unresolved:
            raise NFTServiceError(
                f"Unknown category codes: {', '.join(resolution.unresolved)}",
                FailureKind.REFERENCE_MISSING,
            )
        return resolution

    # -------- id-set listings --------
    async def get_nfts_by_ids(
        self, ids: Sequence[str], listed: bool | None = None
    ) -> list[PopulatedNFT]:
        """Return the grouped, populated NFTs whose chain ids are in ``ids``."""

        try:
            page = await self._indexer.fetch_nfts_by_ids(ids, listed=listed)
            return await self._compose(page.nodes)
        except UPSTREAM_ERRORS as exc:
            raise self._failure(LISTING_FAILURE, exc) from exc

    async def get_nfts_not_in_ids(
        self, ids: Sequence[str], listed: bool | None = None
    ) -> list[PopulatedNFT]:
        """Return every grouped, populated NFT whose chain id is not in ``ids``."""

        try:
            page = await self._indexer.fetch_nfts_not_in_ids(ids, listed=listed)
            return await self._compose(page.nodes)
        except UPSTREAM_ERRORS as exc:
            raise self._failure(LISTING_FAILURE, exc) from exc

    async def get_paginated_nfts_not_in_ids(
        self,
        ids: Sequence[str],
        page: int = 1,
        limit: int | None = None,
        listed: bool | None = None,
    ) -> PageResult[PopulatedNFT]:
        """Return one indexer-paginated page of NFTs outside ``ids``."""

        window = self._window(page, limit)
        try:
            result = await self._indexer.fetch_nfts_not_in_ids(
                ids, listed=listed, window=window
            )
            return await self._indexer_page(result)
        except UPSTREAM_ERRORS as exc:
            raise self._failure(LISTING_FAILURE, exc) from exc

    # -------- category listings --------
    async def get_nfts_by_categories(
        self,
        codes: Sequence[str] | None,
        listed: bool | None = None,
        *,
        strict: bool | None = None,
    ) -> list[PopulatedNFT]:
        """Return NFTs in any of ``codes``, or every uncategorized NFT when ``None``."""

        try:
            if codes is None:
                categorized = await self._categories.categorized_chain_ids()
                page = await self._indexer.fetch_nfts_not_in_ids(categorized, listed=listed)
            else:
                resolution = await self._resolve(codes, strict)
                chain_ids = await self._categories.chain_ids_for_categories(
                    resolution.category_ids
                )
                page = await self._indexer.fetch_nfts_by_ids(chain_ids, listed=listed)
            return await self._compose(page.nodes)
        except UPSTREAM_ERRORS as exc:
            raise self._failure(LISTING_FAILURE, exc) from exc

    async def get_paginated_nfts_by_categories(
        self,
        codes: Sequence[str] | None,
        page: int = 1,
        limit: int | None = None,
        listed: bool | None = None,
        *,
        strict: bool | None = None,
    ) -> PageResult[PopulatedNFT]:
        """Return one page of NFTs filtered by category.

        Uncategorized listings are windowed by the indexer over the complement
        of the categorized id set. Category listings are windowed by the local
        store first, so their page metadata comes from the local count and the
        matching ids are then fetched from the indexer without a bound.
        """

        window = self._window(page, limit)
        try:
            if codes is None:
                categorized = await self._categories.categorized_chain_ids()
                result = await self._indexer.fetch_nfts_not_in_ids(
                    categorized, listed=listed, window=window
                )
                return await self._indexer_page(result)

            resolution = await self._resolve(codes, strict)
            local_page = await self._categories.paginate_chain_ids_for_categories(
                resolution.category_ids, window
            )
            if not local_page.chain_ids:
                return PageResult[PopulatedNFT](
                    data=[],
                    has_next_page=local_page.has_next_page,
                    has_previous_page=local_page.has_previous_page,
                    total_count=local_page.total_count,
                    source=PaginationSource.LOCAL,
                )
            nodes = await self._indexer.fetch_nfts_by_ids(
                local_page.chain_ids, listed=listed
            )
            return PageResult[PopulatedNFT](
                data=await self._compose(nodes.nodes),
                has_next_page=local_page.has_next_page,
                has_previous_page=local_page.has_previous_page,
                total_count=local_page.total_count,
                source=PaginationSource.LOCAL,
            )
        except UPSTREAM_ERRORS as exc:
            raise self._failure(LISTING_FAILURE, exc) from exc

    # -------- series lookups --------
    async def get_series_nfts(self, serie_id: str) -> PageResult[NFTNode]:
        """Return every raw node of ``serie_id`` without grouping or population."""

        try:
            page = await self._indexer.fetch_serie(serie_id)
        except UPSTREAM_ERRORS as exc:
            raise self._failure(SERIE_FAILURE, exc) from exc
        return PageResult[NFTNode](
            data=page.nodes,
            has_next_page=page.has_next_page,
            has_previous_page=page.has_previous_page,
            total_count=page.total_count,
            source=PaginationSource.INDEXER,
        )

    async def get_series_nft_ids(self, serie_id: str) -> PageResult[str]:
        """Return the ordered chain ids of every member of ``serie_id``."""

        try:
            page = await self._indexer.fetch_serie_ids(serie_id)
        except UPSTREAM_ERRORS as exc:
            raise self._failure(SERIE_FAILURE, exc) from exc
        return PageResult[str](
            data=[node.id for node in page.nodes],
            has_next_page=page.has_next_page,
            has_previous_page=page.has_previous_page,
            total_count=page.total_count,
            source=PaginationSource.INDEXER,
        )

    # -------- distribution --------
    async def get_nfts_distribution(
        self,
        serie_id: str,
        users_number: int,
        users_to_exclude: Sequence[str] = (),
        *,
        strict: bool = False,
    ) -> DistributionResult:
        """Rank users and hand out the members of ``serie_id`` in rank order."""

        return await self._distribution.draw(
            serie_id, users_number, users_to_exclude, strict=strict
        )
