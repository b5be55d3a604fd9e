"""SQLModel ORM tables for the sitemap catalog."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Text
from sqlmodel import Field, SQLModel

STATE_ROW_ID = 1


class ContentItem(SQLModel, table=True):
    __tablename__ = "content_items"  # type: ignore[bad-override]
    __table_args__ = (
        Index("idx_content_items_eligibility", "bucket_key", "content_type", "status"),
        Index("idx_content_items_modified_at", "modified_at"),
    )

    item_id: str = Field(primary_key=True)
    content_type: str
    status: str
    url: str = Field(sa_column=Column(Text, nullable=False))
    title: str = Field(default="", sa_column=Column(Text, nullable=False, server_default=""))
    bucket_key: str = Field(max_length=10)
    published_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    modified_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class BucketDocumentRow(SQLModel, table=True):
    __tablename__ = "bucket_documents"  # type: ignore[bad-override]

    bucket_key: str = Field(primary_key=True, max_length=10)
    body: str = Field(sa_column=Column(Text, nullable=False))
    item_count: int = 0
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class GenerationStateRow(SQLModel, table=True):
    __tablename__ = "generation_state"  # type: ignore[bad-override]

    id: int = Field(default=STATE_ROW_ID, primary_key=True)
    in_progress: bool = False
    total: int = 0
    remaining: int = 0
    halt_requested: bool = False
    last_check: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    last_update: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    last_run: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))


class UpdateTriggerRow(SQLModel, table=True):
    __tablename__ = "update_trigger"  # type: ignore[bad-override]

    id: int = Field(default=STATE_ROW_ID, primary_key=True)
    enabled: bool = False
    frequency: str | None = None
    updated_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))


class ScheduledJobRow(SQLModel, table=True):
    __tablename__ = "scheduled_jobs"  # type: ignore[bad-override]
    __table_args__ = (
        Index("idx_scheduled_jobs_due", "status", "fire_at"),
        Index("idx_scheduled_jobs_identity", "job_name", "job_key"),
    )

    job_id: str = Field(primary_key=True)
    job_name: str
    job_key: str
    status: str
    fire_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    attempt: int = 0
    worker_id: str | None = None
    started_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    finished_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    error_summary: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
