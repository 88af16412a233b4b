"""SQLModel ORM tables for persisted delegation state."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Text
from sqlmodel import Field, SQLModel


class PendingProposalRow(SQLModel, table=True):
    """One pending proposal per session; the row is deleted once resolved."""

    __tablename__ = "pending_proposals"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_pending_proposals_expires_at", "expires_at"),)

    session_id: str = Field(primary_key=True)
    proposal_id: str = Field(index=True)
    status: str = Field(index=True)
    patch_path: str
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    expires_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    proposal_json: str = Field(sa_column=Column(Text, nullable=False))
    state_json: str = Field(sa_column=Column(Text, nullable=False))
