"""Pytest configuration and test helpers."""

from __future__ import annotations

import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

import httpx
import pytest


# Ensure the application package is importable when running tests without an
# editable install.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from nftcatalog.config import Settings  # noqa: E402
from nftcatalog.database import Database  # noqa: E402
from nftcatalog.db_models import Category, NFTDocument, User  # noqa: E402
from nftcatalog.services.indexer import IndexerClient  # noqa: E402
from nftcatalog.services.nft_service import NFTService  # noqa: E402

INDEXER_URL = "https://indexer.example.com/graphql"


def node(
    nft_id: str,
    serie_id: str = "0",
    *,
    listed: int = 0,
    owner: str = "owner",
    price: str = "0",
    burned: bool = False,
) -> dict[str, Any]:
    """Build an indexer node payload."""

    return {
        "id": nft_id,
        "owner": owner,
        "creator": "creator",
        "listed": listed,
        "serieId": serie_id,
        "price": price,
        "priceTiime": "0",
        "marketplaceId": "0",
        "nftIpfs": f"ipfs://{nft_id}",
        "isCapsule": False,
        "timestampList": None,
        "timestampBurn": "2024-01-01T00:00:00" if burned else None,
    }


UNIVERSE: list[dict[str, Any]] = [
    node("1", "A", listed=1, owner="alice", price="10"),
    node("2", "A", listed=0, owner="bob", price="10"),
    node("3", listed=1),
    node("4", "B", listed=1),
    node("5", "B", listed=1),
    node("6", listed=0),
    node("7", "C", listed=0),
    node("8", burned=True),
    node("10", "S1"),
    node("11", "S1"),
    node("12", "S1"),
]


class FakeIndexer:
    """In-memory indexer honouring the id-set, listed, serie and window variables."""

    def __init__(self, nodes: list[dict[str, Any]] | None = None):
        self.nodes = list(UNIVERSE if nodes is None else nodes)
        self.requests: list[dict[str, Any]] = []
        self.failures: list[httpx.Response] = []

    @property
    def variables(self) -> list[dict[str, Any]]:
        return [payload["variables"] for payload in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.requests.append(payload)
        if self.failures:
            return self.failures.pop(0)

        variables = payload["variables"]
        selected = [item for item in self.nodes if item.get("timestampBurn") is None]
        if "ids" in variables:
            selected = [item for item in selected if item["id"] in variables["ids"]]
        if "excludeIds" in variables:
            selected = [
                item for item in selected if item["id"] not in variables["excludeIds"]
            ]
        if "listed" in variables:
            selected = [item for item in selected if item["listed"] == variables["listed"]]
        if "serieId" in variables:
            selected = [item for item in selected if item["serieId"] == variables["serieId"]]

        total = len(selected)
        offset = variables.get("offset", 0)
        limit = variables.get("limit")
        window = selected[offset:] if limit is None else selected[offset : offset + limit]
        return httpx.Response(
            200,
            json={
                "data": {
                    "nftEntities": {
                        "totalCount": total,
                        "pageInfo": {
                            "hasNextPage": offset + len(window) < total,
                            "hasPreviousPage": offset > 0,
                        },
                        "nodes": window,
                    }
                }
            },
        )


def build_settings(**overrides: Any) -> Settings:
    """Return a settings object with defaults suitable for tests."""

    base: dict[str, Any] = {
        "INDEXER_URL": INDEXER_URL,
        "INDEXER_MAX_RETRIES": 0,
    }
    base.update(overrides)
    return Settings(_env_file=None, **base)  # type: ignore[arg-type]


async def seed_store(database: Database) -> None:
    """Populate categories, NFT documents and ranked users."""

    async with database.session_factory() as session:
        art = Category(code="art", name="Art")
        music = Category(code="music", name="Music")
        sport = Category(code="sport", name="Sport")
        session.add_all(
            [
                art,
                music,
                sport,
                NFTDocument(chain_id="1", views_count=12, categories=[art]),
                NFTDocument(chain_id="2", views_count=3, categories=[art]),
                NFTDocument(chain_id="3", views_count=7, categories=[music, art]),
                NFTDocument(chain_id="4", views_count=0, categories=[]),
                User(id="A", tiime_amount=100, last_claimed_at=datetime(2024, 1, 5)),
                User(id="B", tiime_amount=80, last_claimed_at=datetime(2024, 1, 2)),
                User(id="C", tiime_amount=80, last_claimed_at=datetime(2024, 1, 1)),
                User(id="D", tiime_amount=80, last_claimed_at=datetime(2024, 1, 3)),
                User(id="E", tiime_amount=80, last_claimed_at=None),
                User(id="X", tiime_amount=500, last_claimed_at=datetime(2023, 1, 1)),
            ]
        )
        await session.commit()


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return build_settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}",
        DISTRIBUTION_OUTPUT_DIR=str(tmp_path / "distributions"),
        MAX_PAGE_LIMIT=50,
    )


@pytest.fixture
async def database(anyio_backend: str, settings: Settings):
    database = Database(settings.database_url)
    await database.create_all()
    await seed_store(database)
    try:
        yield database
    finally:
        await database.dispose()


@pytest.fixture
def fake_indexer() -> FakeIndexer:
    return FakeIndexer()


@pytest.fixture
async def service(
    anyio_backend: str,
    settings: Settings,
    database: Database,
    fake_indexer: FakeIndexer,
):
    transport = httpx.MockTransport(fake_indexer.handler)
    async with httpx.AsyncClient(transport=transport) as http_client:
        indexer = IndexerClient(settings, http_client)
        yield NFTService(settings, indexer, database.session_factory)
