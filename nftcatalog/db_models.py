"""SQLAlchemy ORM models backing the local document store."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Table, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


nft_categories = Table(
    "nft_categories",
    Base.metadata,
    Column(
        "nft_chain_id",
        String(64),
        ForeignKey("nfts.chain_id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "category_id",
        Integer,
        ForeignKey("categories.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class Category(Base):
    """A curated tag applied to NFTs independently of on-chain data."""

    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(120))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    nfts: Mapped[list["NFTDocument"]] = relationship(
        secondary=nft_categories, back_populates="categories"
    )


class NFTDocument(Base):
    """Locally stored metadata for an NFT, keyed by its blockchain id."""

    __tablename__ = "nfts"

    chain_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    views_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    categories: Mapped[list[Category]] = relationship(
        secondary=nft_categories, back_populates="nfts"
    )


class User(Base):
    """Candidate user ranked by the distribution engine."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tiime_amount: Mapped[float] = mapped_column(Float, default=0.0)
    last_claimed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
