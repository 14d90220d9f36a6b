"""Distribution engine pairing ranked users with the members of a serie."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings
from ..database import Database
from ..db_models import User
from ..errors import FailureKind, NFTDistributionError, NFTServiceError, classify_failure
from ..models import DistributionResult, PageResult

logger = logging.getLogger(__name__)

DISTRIBUTION_FAILURE = "Couldn't get NFTs distribution"

SerieIdsLookup = Callable[[str], Awaitable[PageResult[str]]]


def pair_ranked_users(nft_ids: Sequence[str], user_ids: Sequence[str]) -> dict[str, str]:
    """Give the i-th NFT to the i-th ranked user, stopping at the shorter list."""

    return {nft_id: user_id for nft_id, user_id in zip(nft_ids, user_ids)}


def artifact_name(drawn_at: datetime) -> str:
    """Return the dated file name a draw is persisted under."""

    return f"nft-distribution-{drawn_at.astimezone(timezone.utc).date().isoformat()}.json"


class DistributionEngine:
    """Rank users, fetch a serie and persist the resulting assignment."""

    def __init__(
        self,
        settings: Settings,
        serie_ids_lookup: SerieIdsLookup,
        *,
        database_factory: Callable[[str], Database] = Database,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Create a distribution engine.

        Parameters
        ----------
        settings : Settings
            Provides the user-ranking database URL and the artifact directory.
        serie_ids_lookup : SerieIdsLookup
            Coroutine returning the ordered member ids of a serie.
        database_factory : Callable[[str], Database], default: Database
            Builds the per-draw database handle from a URL.
        clock : Callable[[], datetime] | None, default: None
            Source of the draw timestamp; defaults to the current UTC time.
        """

        self._settings = settings
        self._serie_ids_lookup = serie_ids_lookup
        self._database_factory = database_factory
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @staticmethod
    async def rank_users(
        session: AsyncSession,
        users_number: int,
        users_to_exclude: Sequence[str] = (),
    ) -> list[str]:
        """Return the ids of the top ``users_number`` users.

        Users are ordered by ``tiime_amount`` descending, then by
        ``last_claimed_at`` ascending with users that never claimed last, then
        by id so that the order is total.
        """

        if users_number <= 0:
            return []
        stmt = select(User.id)
        if users_to_exclude:
            stmt = stmt.where(User.id.not_in(list(users_to_exclude)))
        stmt = stmt.order_by(
            User.tiime_amount.desc(),
            User.last_claimed_at.is_(None),
            User.last_claimed_at.asc(),
            User.id.asc(),
        ).limit(users_number)
        result = await session.execute(stmt)
        return list(result.scalars())

    async def draw(
        self,
        serie_id: str,
        users_number: int,
        users_to_exclude: Sequence[str] = (),
        *,
        strict: bool = False,
    ) -> DistributionResult:
        """Run one draw for ``serie_id`` and write its artifact.

        Parameters
        ----------
        serie_id : str
            Serie whose members are handed out.
        users_number : int
            Number of top-ranked users taking part in the draw.
        users_to_exclude : Sequence[str], default: ()
            User ids that never take part.
        strict : bool, default: False
            Fail with ``resource_exhausted`` instead of leaving NFTs unassigned
            when there are fewer ranked users than serie members.

        Returns
        -------
        DistributionResult
            Assignment of NFT ids to user ids in serie-member order, plus the
            members left without a winner and the artifact location.

        Raises
        ------
        ValueError
            If ``users_number`` is negative.
        NFTDistributionError
            If the user store, the indexer or the artifact write fails, or on a
            shortfall when ``strict`` is set. The upstream error is kept as
            ``cause``.
        """

        if users_number < 0:
            raise ValueError("users_number must not be negative")

        excluded = list(dict.fromkeys(users_to_exclude))
        logger.info("Connecting to db...")
        database = self._database_factory(self._settings.effective_distribution_database_url)
        try:
            async with database.session() as session:
                logger.info("Retrieving users...")
                users = await self.rank_users(session, users_number, excluded)
            logger.info("Users retrieved, total: %s", len(users))

            logger.info("Retrieving NFTs for serie %s...", serie_id)
            nft_ids = (await self._serie_ids_lookup(serie_id)).data
            logger.info("NFTs retrieved, total: %s", len(nft_ids))

            unassigned = list(nft_ids[len(users):])
            if unassigned:
                if strict:
                    raise NFTDistributionError(
                        f"{DISTRIBUTION_FAILURE}: {len(nft_ids)} NFTs for {len(users)} users",
                        FailureKind.RESOURCE_EXHAUSTED,
                    )
                logger.warning(
                    "Only %s ranked users for %s NFTs; %s NFTs stay unassigned",
                    len(users),
                    len(nft_ids),
                    len(unassigned),
                )

            logger.info("Building assignment...")
            assignments = pair_ranked_users(nft_ids, users)
            drawn_at = self._clock()
            path = await self._write_artifact(assignments, drawn_at)
            logger.info("Distribution saved to %s", path)
        except NFTDistributionError:
            logger.exception("Distribution for serie %s failed", serie_id)
            raise
        except (NFTServiceError, SQLAlchemyError, OSError) as exc:
            logger.exception("Distribution for serie %s failed", serie_id)
            raise NFTDistributionError(
                DISTRIBUTION_FAILURE, classify_failure(exc), exc
            ) from exc
        finally:
            await database.dispose()

        return DistributionResult(
            serie_id=serie_id,
            drawn_at=drawn_at,
            assignments=assignments,
            winners=list(assignments.values()),
            unassigned_nft_ids=unassigned,
            artifact_path=str(path),
        )

    async def _write_artifact(self, assignments: dict[str, str], drawn_at: datetime) -> Path:
        directory = Path(self._settings.distribution_output_dir)
        path = directory / artifact_name(drawn_at)
        payload = json.dumps(assignments)

        def _write() -> None:
            directory.mkdir(parents=True, exist_ok=True)
            path.write_text(payload, encoding="utf-8")

        await asyncio.to_thread(_write)
        return path
