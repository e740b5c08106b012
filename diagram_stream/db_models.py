"""SQLAlchemy models for diagram sessions and accepted document versions."""
from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from diagram_stream.db import Base


class DiagramSession(Base):
    __tablename__ = "diagram_sessions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(200), default="Diagram Session")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    versions = relationship(
        "DiagramVersion",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="DiagramVersion.version",
    )


class DiagramVersion(Base):
    __tablename__ = "diagram_versions"
    __table_args__ = (UniqueConstraint("session_id", "version", name="uq_diagram_version"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("diagram_sessions.id"))
    version: Mapped[int] = mapped_column(Integer)
    xml: Mapped[str] = mapped_column(Text)
    reason: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    session = relationship("DiagramSession", back_populates="versions")
