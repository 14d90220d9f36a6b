"""Pydantic models describing NFT listings and distribution payloads."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

NO_SERIE_IDS = frozenset({"", "0"})

T = TypeVar("T")


class NFTNode(BaseModel):
    """Raw NFT entity as returned by the indexer."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    id: str
    owner: str | None = None
    creator: str | None = None
    listed: bool = False
    serie_id: str | None = None
    price: str | None = None
    price_tiime: str | None = None
    marketplace_id: str | None = None
    nft_ipfs: str | None = None
    is_capsule: bool = False
    timestamp_list: str | None = None

    @property
    def in_serie(self) -> bool:
        """Return ``True`` when the node belongs to a real multi-NFT serie."""

        return self.serie_id is not None and self.serie_id.strip() not in NO_SERIE_IDS

    @property
    def group_key(self) -> str:
        """Key used to collapse nodes; singletons are keyed by their own id."""

        if self.in_serie:
            return f"serie:{self.serie_id}"
        return f"nft:{self.id}"


class SerieMember(BaseModel):
    """Per-instance summary of one member of a grouped serie."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    id: str
    owner: str | None = None
    listed: bool = False
    price: str | None = None


class GroupedNFT(NFTNode):
    """Representative NFT for a serie with serie-level aggregates."""

    total_nft: int = 1
    total_listed_nft: int = 0
    serie_data: list[SerieMember] = Field(default_factory=list)


class CategoryRef(BaseModel):
    """Category attached to an NFT in the local store."""

    model_config = ConfigDict(frozen=True)

    code: str
    name: str


class PopulatedNFT(GroupedNFT):
    """Grouped NFT enriched with locally curated metadata."""

    categories: list[CategoryRef] = Field(default_factory=list)
    views_count: int | None = None

    def to_response(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class PaginationSource(str, Enum):
    """Authority that windowed a page and owns its metadata."""

    INDEXER = "indexer"
    LOCAL = "local"


class PaginationWindow(BaseModel):
    """Caller-facing page/limit window."""

    model_config = ConfigDict(frozen=True)

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class PageResult(BaseModel, Generic[T]):
    """One page of results plus metadata about the filtered universe."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    data: list[T] = Field(default_factory=list)
    has_next_page: bool = False
    has_previous_page: bool = False
    total_count: int = 0
    source: PaginationSource = PaginationSource.INDEXER

    def to_response(self) -> dict[str, Any]:
        """Return the public page payload without the internal source tag."""

        return self.model_dump(mode="json", by_alias=True, exclude={"source"})


class DistributionResult(BaseModel):
    """Immutable outcome of one distribution draw."""

    model_config = ConfigDict(frozen=True)

    serie_id: str
    drawn_at: datetime
    assignments: dict[str, str] = Field(default_factory=dict)
    winners: list[str] = Field(default_factory=list)
    unassigned_nft_ids: list[str] = Field(default_factory=list)
    artifact_path: str | None = None
