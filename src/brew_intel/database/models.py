"""SQLAlchemy ORM models for Brew Intel."""

import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def new_id() -> str:
    return uuid.uuid4().hex


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class ContentItem(Base):
    """One observed piece of brewery content.

    Pipeline state is inferred rather than stored: an item without
    ``extracted_data["llmExtraction"]`` has not been extracted yet, and one
    without ``extracted_data["deduplication"]`` has not been dedup-checked.
    """

    __tablename__ = "content_items"
    __table_args__ = (
        Index(
            "ix_content_items_dedup_candidates",
            "brewery_id",
            "is_duplicate",
            "publication_date",
        ),
        Index("ix_content_items_publication_date", "publication_date"),
        Index("ix_content_items_source_type", "source_type"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    brewery_id: Mapped[str] = mapped_column(String(64), nullable=False)
    source_type: Mapped[str] = mapped_column(String(20), nullable=False)  # email, instagram, facebook, rss
    source_url: Mapped[Optional[str]] = mapped_column(String(2048))
    raw_content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    extracted_data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    publication_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    is_duplicate: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    duplicate_of_id: Mapped[Optional[str]] = mapped_column(String(32), ForeignKey("content_items.id"))
    confidence_score: Mapped[Optional[float]] = mapped_column(Float)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def llm_extraction(self) -> Optional[dict]:
        return (self.extracted_data or {}).get("llmExtraction")

    @property
    def is_extracted(self) -> bool:
        extraction = self.llm_extraction
        return bool(extraction) and "success" in extraction

    @property
    def is_dedup_checked(self) -> bool:
        return self.is_duplicate or "deduplication" in (self.extracted_data or {})

    def __repr__(self) -> str:
        return (
            f"<ContentItem(id={self.id}, brewery={self.brewery_id}, "
            f"source='{self.source_type}', duplicate={self.is_duplicate})>"
        )


class FailedJob(Base):
    """A job that exhausted its retries, kept for operator review."""

    __tablename__ = "failed_jobs"
    __table_args__ = (
        Index("ix_failed_jobs_queue_name", "queue_name"),
        Index("ix_failed_jobs_created_at", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    queue_name: Mapped[str] = mapped_column(String(50), nullable=False)
    job_name: Mapped[str] = mapped_column(String(100), nullable=False)
    job_id: Mapped[Optional[str]] = mapped_column(String(32))
    job_data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    error: Mapped[str] = mapped_column(Text, nullable=False)
    stack_trace: Mapped[Optional[str]] = mapped_column(Text)
    attempts_made: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<FailedJob(id={self.id}, job='{self.queue_name}/{self.job_name}', attempts={self.attempts_made})>"


class ContentPartition(Base):
    """Monthly storage partition of the content_items table."""

    __tablename__ = "content_partitions"
    __table_args__ = (UniqueConstraint("year", "month", name="uq_partition_month"),)

    name: Mapped[str] = mapped_column(String(64), primary_key=True)  # content_items_YYYY_MM
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    range_start: Mapped[date] = mapped_column(Date, nullable=False)
    range_end: Mapped[date] = mapped_column(Date, nullable=False)  # exclusive
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<ContentPartition(name='{self.name}')>"
