"""Tests for the ranked NFT distribution engine."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import httpx
import pytest

from nftcatalog.config import Settings
from nftcatalog.database import Database
from nftcatalog.errors import FailureKind, NFTDistributionError
from nftcatalog.models import PageResult
from nftcatalog.services.distribution import (
    DistributionEngine,
    artifact_name,
    pair_ranked_users,
)
from nftcatalog.services.nft_service import NFTService

DRAWN_AT = datetime(2026, 10, 19, 12, 30, tzinfo=timezone.utc)


def _fixed_clock() -> datetime:
    return DRAWN_AT


def _engine(service: NFTService, settings: Settings, **kwargs) -> DistributionEngine:
    return DistributionEngine(
        settings, service.get_series_nft_ids, clock=_fixed_clock, **kwargs
    )


class RecordingDatabase(Database):
    instances: list["RecordingDatabase"] = []

    def __init__(self, database_url: str):
        super().__init__(database_url)
        self.disposed = False
        RecordingDatabase.instances.append(self)

    async def dispose(self) -> None:
        self.disposed = True
        await super().dispose()


def test_pairing_stops_at_the_shorter_sequence() -> None:
    assert pair_ranked_users(["n1", "n2", "n3"], ["u1", "u2", "u3"]) == {
        "n1": "u1",
        "n2": "u2",
        "n3": "u3",
    }
    assert pair_ranked_users(["n1", "n2", "n3"], ["u1"]) == {"n1": "u1"}
    assert pair_ranked_users(["n1"], ["u1", "u2"]) == {"n1": "u1"}
    assert pair_ranked_users([], ["u1"]) == {}


def test_artifact_name_uses_utc_date() -> None:
    assert artifact_name(DRAWN_AT) == "nft-distribution-2026-10-19.json"


@pytest.mark.anyio
async def test_ranking_orders_by_score_then_earliest_claim(database: Database) -> None:
    async with database.session() as session:
        ranked = await DistributionEngine.rank_users(session, 10, ["X"])

    assert ranked == ["A", "C", "B", "D", "E"]


@pytest.mark.anyio
async def test_draw_assigns_serie_in_rank_order(
    service: NFTService, settings: Settings
) -> None:
    result = await _engine(service, settings).draw("S1", 3, ["X"])

    assert result.winners == ["A", "C", "B"]
    assert result.assignments == {"10": "A", "11": "C", "12": "B"}
    assert list(result.assignments) == ["10", "11", "12"]
    assert result.unassigned_nft_ids == []
    assert result.drawn_at == DRAWN_AT

    artifact = Path(settings.distribution_output_dir) / "nft-distribution-2026-10-19.json"
    assert result.artifact_path == str(artifact)
    assert json.loads(artifact.read_text(encoding="utf-8")) == {
        "10": "A",
        "11": "C",
        "12": "B",
    }


@pytest.mark.anyio
async def test_service_exposes_distribution(service: NFTService, settings: Settings) -> None:
    result = await service.get_nfts_distribution("S1", 3, ["X", "A"])

    assert result.assignments == {"10": "C", "11": "B", "12": "D"}
    assert result.artifact_path is not None
    assert Path(result.artifact_path).exists()


@pytest.mark.anyio
async def test_same_day_draw_overwrites_artifact(
    service: NFTService, settings: Settings
) -> None:
    engine = _engine(service, settings)
    await engine.draw("S1", 3, ["X"])
    second = await engine.draw("S1", 3, [])

    artifact = Path(second.artifact_path or "")
    assert json.loads(artifact.read_text(encoding="utf-8")) == {
        "10": "X",
        "11": "A",
        "12": "C",
    }
    assert len(list(artifact.parent.iterdir())) == 1


@pytest.mark.anyio
async def test_shortfall_leaves_nfts_unassigned(
    service: NFTService, settings: Settings
) -> None:
    result = await _engine(service, settings).draw("S1", 2, ["X"])

    assert result.assignments == {"10": "A", "11": "C"}
    assert result.unassigned_nft_ids == ["12"]


@pytest.mark.anyio
async def test_shortfall_fails_in_strict_mode(
    service: NFTService, settings: Settings
) -> None:
    with pytest.raises(NFTDistributionError) as excinfo:
        await _engine(service, settings).draw("S1", 2, ["X"], strict=True)

    assert excinfo.value.kind is FailureKind.RESOURCE_EXHAUSTED
    assert not Path(settings.distribution_output_dir).exists()


@pytest.mark.anyio
async def test_zero_users_assigns_nothing(service: NFTService, settings: Settings) -> None:
    result = await _engine(service, settings).draw("S1", 0)

    assert result.assignments == {}
    assert result.unassigned_nft_ids == ["10", "11", "12"]


@pytest.mark.anyio
async def test_negative_users_number_is_rejected(
    service: NFTService, settings: Settings
) -> None:
    with pytest.raises(ValueError):
        await _engine(service, settings).draw("S1", -1)


@pytest.mark.anyio
async def test_database_is_released_when_the_indexer_fails(
    service: NFTService, settings: Settings, fake_indexer
) -> None:
    RecordingDatabase.instances = []
    fake_indexer.failures.append(httpx.Response(503, text="down"))
    engine = _engine(service, settings, database_factory=RecordingDatabase)

    with pytest.raises(NFTDistributionError) as excinfo:
        await engine.draw("S1", 3, ["X"])

    assert excinfo.value.message == "Couldn't get NFTs distribution"
    assert excinfo.value.kind is FailureKind.UPSTREAM_UNAVAILABLE
    assert excinfo.value.cause is not None
    assert [database.disposed for database in RecordingDatabase.instances] == [True]


@pytest.mark.anyio
async def test_database_is_released_after_success(
    service: NFTService, settings: Settings
) -> None:
    RecordingDatabase.instances = []
    engine = _engine(service, settings, database_factory=RecordingDatabase)

    await engine.draw("S1", 3, ["X"])

    assert [database.disposed for database in RecordingDatabase.instances] == [True]


@pytest.mark.anyio
async def test_unreachable_user_store_is_reported(
    anyio_backend: str, tmp_path: Path
) -> None:
    settings = Settings(
        _env_file=None,
        DISTRIBUTION_DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'users.db'}",
        DISTRIBUTION_OUTPUT_DIR=str(tmp_path / "out"),
    )
    lookups: list[str] = []

    async def lookup(serie_id: str) -> PageResult[str]:
        lookups.append(serie_id)
        return PageResult[str](data=["1"])

    engine = DistributionEngine(settings, lookup, clock=_fixed_clock)

    with pytest.raises(NFTDistributionError) as excinfo:
        await engine.draw("S1", 1)

    assert excinfo.value.kind is FailureKind.UPSTREAM_UNAVAILABLE
    assert lookups == []


@pytest.mark.anyio
async def test_malformed_serie_page_is_a_distribution_failure(
    service: NFTService, settings: Settings, fake_indexer
) -> None:
    fake_indexer.failures.append(
        httpx.Response(
            200,
            json={"data": {"nftEntities": {"totalCount": 3, "pageInfo": "broken", "nodes": []}}},
        )
    )

    with pytest.raises(NFTDistributionError) as excinfo:
        await service.get_nfts_distribution("S1", 1)

    assert excinfo.value.kind is FailureKind.QUERY_MALFORMED
    assert not Path(settings.distribution_output_dir).exists()
