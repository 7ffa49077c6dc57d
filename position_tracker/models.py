from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from position_tracker.utils import utc_now


class Base(DeclarativeBase):
    pass


class Subject(Base):
    __tablename__ = "subjects"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    normalized_name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    homepage_url: Mapped[str] = mapped_column(String(512), default="", nullable=False)
    party: Mapped[str] = mapped_column(String(64), default="", nullable=False)
    state: Mapped[str] = mapped_column(String(32), default="", nullable=False)
    chamber: Mapped[str] = mapped_column(String(32), default="", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    positions: Mapped[list[Position]] = relationship(back_populates="subject")


class PolicyTopic(Base):
    __tablename__ = "policy_topics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    canonical_name: Mapped[str] = mapped_column(String(64), nullable=False)
    display_name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    parent_topic_id: Mapped[int | None] = mapped_column(ForeignKey("policy_topics.id"), nullable=True)
    discovery_keywords_json: Mapped[str] = mapped_column(Text, default="[]", nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)

    aliases: Mapped[list[TopicAlias]] = relationship(back_populates="topic")
    positions: Mapped[list[Position]] = relationship(back_populates="topic")


class TopicAlias(Base):
    __tablename__ = "topic_aliases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    topic_id: Mapped[int] = mapped_column(ForeignKey("policy_topics.id"), nullable=False)
    alias: Mapped[str] = mapped_column(String(128), nullable=False)
    confidence_weight: Mapped[float] = mapped_column(Float, default=0.8, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)

    topic: Mapped[PolicyTopic] = relationship(back_populates="aliases")


class Position(Base):
    __tablename__ = "positions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subject_id: Mapped[str] = mapped_column(ForeignKey("subjects.id"), nullable=False)
    topic_id: Mapped[int] = mapped_column(ForeignKey("policy_topics.id"), nullable=False)
    position_summary: Mapped[str] = mapped_column(Text, default="", nullable=False)
    position_details: Mapped[str] = mapped_column(Text, default="", nullable=False)
    stance: Mapped[str] = mapped_column(String(16), default="neutral", nullable=False)
    strength: Mapped[str] = mapped_column(String(16), default="moderate", nullable=False)
    confidence_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    is_key_issue: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    key_phrases_json: Mapped[str] = mapped_column(Text, default="[]", nullable=False)
    source_url: Mapped[str] = mapped_column(String(512), default="", nullable=False)
    source_section: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)

    subject: Mapped[Subject] = relationship(back_populates="positions")
    topic: Mapped[PolicyTopic] = relationship(back_populates="positions")


class CrawlLog(Base):
    __tablename__ = "crawl_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False)
    source_url: Mapped[str] = mapped_column(String(512), default="", nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    positions_found: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_kind: Mapped[str] = mapped_column(String(32), default="", nullable=False)
    error_message: Mapped[str] = mapped_column(Text, default="", nullable=False)
    duration_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    crawled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)


class PipelineRun(Base):
    __tablename__ = "pipeline_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    stage: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    details_json: Mapped[str] = mapped_column(Text, default="{}", nullable=False)
    error_message: Mapped[str] = mapped_column(Text, default="", nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


Index("ix_subjects_name", Subject.normalized_name)
Index("ix_policy_topics_canonical_unique", PolicyTopic.canonical_name, unique=True)
Index("ix_topic_aliases_topic_alias_unique", TopicAlias.topic_id, TopicAlias.alias, unique=True)
Index("ix_positions_subject_topic_unique", Position.subject_id, Position.topic_id, unique=True)
Index("ix_positions_topic", Position.topic_id)
Index("ix_crawl_log_subject_crawled_at", CrawlLog.subject_id, CrawlLog.crawled_at)
Index("ix_pipeline_stage_started", PipelineRun.stage, PipelineRun.started_at)
