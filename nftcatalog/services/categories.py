"""Category lookup and translation of category codes into chain id sets."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import Category, NFTDocument
from ..models import PaginationWindow

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CategoryResolution:
    """Outcome of resolving category codes against the local store."""

    resolved: list[Category] = field(default_factory=list)
    unresolved: list[str] = field(default_factory=list)

    @property
    def category_ids(self) -> list[int]:
        return [category.id for category in self.resolved]


@dataclass(slots=True)
class LocalIdPage:
    """Window of chain ids paginated by the local store."""

    chain_ids: list[str]
    total_count: int
    window: PaginationWindow

    @property
    def has_next_page(self) -> bool:
        return self.window.page * self.window.limit < self.total_count

    @property
    def has_previous_page(self) -> bool:
        return self.window.page > 1


class CategoryService:
    """Read-only access to categories and the documents that reference them."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_category_by_code(self, code: str) -> Category | None:
        async with self._session_factory() as session:
            stmt = select(Category).where(Category.code == code)
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def resolve_codes(self, codes: Sequence[str]) -> CategoryResolution:
        """Resolve ``codes`` best-effort, keeping the codes that matched nothing."""

        wanted: list[str] = []
        for code in codes:
            normalized = (code or "").strip()
            if normalized and normalized not in wanted:
                wanted.append(normalized)
        if not wanted:
            return CategoryResolution()

        async with self._session_factory() as session:
            stmt = select(Category).where(Category.code.in_(wanted))
            result = await session.execute(stmt)
            by_code = {category.code: category for category in result.scalars()}

        resolution = CategoryResolution(
            resolved=[by_code[code] for code in wanted if code in by_code],
            unresolved=[code for code in wanted if code not in by_code],
        )
        if resolution.unresolved:
            logger.warning(
                "Ignoring unknown category codes: %s", ", ".join(resolution.unresolved)
            )
        return resolution

    async def categorized_chain_ids(self) -> list[str]:
        """Return the chain id of every document carrying at least one category."""

        async with self._session_factory() as session:
            stmt = (
                select(NFTDocument.chain_id)
                .where(NFTDocument.categories.any())
                .order_by(NFTDocument.chain_id)
            )
            result = await session.execute(stmt)
            return list(result.scalars())

    async def chain_ids_for_categories(self, category_ids: Sequence[int]) -> list[str]:
        """Return the chain ids of documents in any of ``category_ids``."""

        if not category_ids:
            return []
        async with self._session_factory() as session:
            stmt = (
                select(NFTDocument.chain_id)
                .where(NFTDocument.categories.any(Category.id.in_(category_ids)))
                .order_by(NFTDocument.chain_id)
            )
            result = await session.execute(stmt)
            return list(result.scalars())

    async def paginate_chain_ids_for_categories(
        self, category_ids: Sequence[int], window: PaginationWindow
    ) -> LocalIdPage:
        """Return one page of matching chain ids plus the total match count."""

        if not category_ids:
            return LocalIdPage(chain_ids=[], total_count=0, window=window)
        criterion = NFTDocument.categories.any(Category.id.in_(category_ids))
        async with self._session_factory() as session:
            total = await session.scalar(
                select(func.count()).select_from(NFTDocument).where(criterion)
            )
            stmt = (
                select(NFTDocument.chain_id)
                .where(criterion)
                .order_by(NFTDocument.chain_id)
                .offset(window.offset)
                .limit(window.limit)
            )
            result = await session.execute(stmt)
            chain_ids = list(result.scalars())
        return LocalIdPage(chain_ids=chain_ids, total_count=int(total or 0), window=window)
