"""Enrich grouped NFTs with metadata curated in the local store."""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from ..db_models import NFTDocument
from ..models import CategoryRef, GroupedNFT, PopulatedNFT

logger = logging.getLogger(__name__)


class NFTPopulator:
    """Attach local categories and view counts to indexer-sourced NFTs."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        concurrency: int = 8,
    ) -> None:
        self._session_factory = session_factory
        self._semaphore = asyncio.Semaphore(concurrency)

    async def _load_document(self, chain_id: str) -> NFTDocument | None:
        async with self._semaphore:
            async with self._session_factory() as session:
                stmt = (
                    select(NFTDocument)
                    .options(selectinload(NFTDocument.categories))
                    .where(NFTDocument.chain_id == chain_id)
                )
                result = await session.execute(stmt)
                return result.scalar_one_or_none()

    async def populate(self, nft: GroupedNFT) -> PopulatedNFT:
        """Return ``nft`` with local metadata added; indexer fields are kept as-is."""

        base = nft.model_dump(include=set(GroupedNFT.model_fields))
        document = await self._load_document(nft.id)
        if document is None:
            logger.debug("No local document for NFT %s", nft.id)
            return PopulatedNFT(**base)
        categories = [
            CategoryRef(code=category.code, name=category.name)
            for category in sorted(document.categories, key=lambda item: item.code)
        ]
        return PopulatedNFT(
            **base,
            categories=categories,
            views_count=document.views_count,
        )

    async def populate_all(self, nfts: Sequence[GroupedNFT]) -> list[PopulatedNFT]:
        """Populate ``nfts`` concurrently, preserving their order."""

        if not nfts:
            return []
        return list(await asyncio.gather(*(self.populate(nft) for nft in nfts)))
