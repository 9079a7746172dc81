"""SQLAlchemy database models."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JsonBlob = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Search(Base):
    """User-defined search: keyword terms, a style prompt and reference images."""

    __tablename__ = "searches"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    search_terms: Mapped[list] = mapped_column(JsonBlob, default=list, nullable=False)
    search_prompt: Mapped[str] = mapped_column(Text, nullable=False)
    example_images: Mapped[list] = mapped_column(JsonBlob, default=list, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    # Relationships
    offers: Mapped[list["Offer"]] = relationship(
        "Offer", back_populates="search", cascade="all, delete-orphan", passive_deletes=True
    )


class Offer(Base):
    """One marketplace listing discovered under one search."""

    __tablename__ = "offers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    search_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("searches.id", ondelete="CASCADE"), nullable=False
    )
    source: Mapped[str] = mapped_column(Text, nullable=False)
    external_id: Mapped[str] = mapped_column(Text, nullable=False)
    search_term: Mapped[str] = mapped_column(Text, nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric, nullable=True)
    price_currency: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    brand: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    subcategory: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    condition: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    size: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    color: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    material: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    availability: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at_source: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    raw_metadata: Mapped[Any] = mapped_column(JsonBlob, default=dict, nullable=False)  # audit only
    scraped_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    # Relationships
    search: Mapped["Search"] = relationship("Search", back_populates="offers")
    images: Mapped[list["OfferImage"]] = relationship(
        "OfferImage",
        back_populates="offer",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="OfferImage.position",
    )

    __table_args__ = (
        UniqueConstraint("source", "external_id", "search_id", name="offers_source_external_search_unique"),
        Index("offers_search_id_idx", "search_id"),
        Index("offers_search_term_idx", "search_term"),
        Index("offers_brand_idx", "brand"),
        Index("offers_category_idx", "category"),
        Index("offers_price_amount_idx", "price_amount"),
    )


class OfferImage(Base):
    """Image of an offer; identity is purely positional."""

    __tablename__ = "offer_images"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    offer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("offers.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    image_url: Mapped[str] = mapped_column(Text, nullable=False)
    image_url_full: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_url_thumb: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_data: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # base64, no data: prefix
    image_mime: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    # Relationships
    offer: Mapped["Offer"] = relationship("Offer", back_populates="images")

    __table_args__ = (
        UniqueConstraint("offer_id", "position", name="offer_images_offer_position_unique"),
    )


class OfferSearchEvaluation(Base):
    """Judgment verdict for one offer against one search.

    decision is MATCH or NO_MATCH from the model, or ERROR when the
    judgment call failed (score and confidence are then NULL).
    """

    __tablename__ = "offer_search_evaluations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    offer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("offers.id", ondelete="CASCADE"), nullable=False
    )
    search_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("searches.id", ondelete="CASCADE"), nullable=False
    )
    decision: Mapped[str] = mapped_column(Text, nullable=False)
    style_score: Mapped[Optional[Decimal]] = mapped_column(Numeric, nullable=True)
    confidence: Mapped[Optional[Decimal]] = mapped_column(Numeric, nullable=True)
    match_reasons: Mapped[list] = mapped_column(JsonBlob, default=list, nullable=False)
    mismatch_reasons: Mapped[list] = mapped_column(JsonBlob, default=list, nullable=False)
    tags: Mapped[list] = mapped_column(JsonBlob, default=list, nullable=False)
    raw_model_output: Mapped[Any] = mapped_column(JsonBlob, nullable=False)
    model_name: Mapped[str] = mapped_column(Text, nullable=False)
    model_version: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    evaluated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("offer_id", "search_id", name="offer_search_evaluations_offer_search_unique"),
        Index("offer_search_evaluations_search_decision_idx", "search_id", "decision"),
        Index("offer_search_evaluations_offer_idx", "offer_id"),
    )
