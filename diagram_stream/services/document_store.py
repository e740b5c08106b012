"""Persistence of diagram sessions and their accepted document versions."""
from __future__ import annotations

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session as DbSession

from diagram_stream.db_models import DiagramSession, DiagramVersion

logger = logging.getLogger(__name__)

SAVE_ATTEMPTS = 3


def _to_uuid(value: str | UUID) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (ValueError, AttributeError):
        return None


def create_session(db: DbSession, title: str = "Diagram Session") -> DiagramSession:
    session = DiagramSession(title=title)
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


def get_session(db: DbSession, session_id: str | UUID) -> Optional[DiagramSession]:
    sid = _to_uuid(session_id)
    if sid is None:
        return None
    return db.get(DiagramSession, sid)


def latest_version(db: DbSession, session_id: UUID) -> Optional[DiagramVersion]:
    return db.execute(
        select(DiagramVersion)
        .where(DiagramVersion.session_id == session_id)
        .order_by(DiagramVersion.version.desc())
        .limit(1)
    ).scalar_one_or_none()


def list_versions(db: DbSession, session_id: UUID) -> List[DiagramVersion]:
    return list(
        db.execute(
            select(DiagramVersion)
            .where(DiagramVersion.session_id == session_id)
            .order_by(DiagramVersion.version.asc())
        ).scalars()
    )


def _next_version(db: DbSession, session_id: UUID) -> int:
    current = db.execute(
        select(func.max(DiagramVersion.version)).where(DiagramVersion.session_id == session_id)
    ).scalar()
    return (current or 0) + 1


def save_version(db: DbSession, session: DiagramSession, xml: str, reason: str) -> DiagramVersion:
    """Append a version; a concurrent writer that took the number first forces a retry."""
    session_id = session.id
    for attempt in range(1, SAVE_ATTEMPTS + 1):
        record = DiagramVersion(session_id=session_id, version=_next_version(db, session_id), xml=xml, reason=reason)
        db.add(record)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.warning(
                "Version number taken by a concurrent write",
                extra={"session_id": str(session_id), "version": record.version, "attempt": attempt},
            )
            if attempt == SAVE_ATTEMPTS:
                raise
            continue
        db.refresh(record)
        logger.info(
            "Stored diagram version",
            extra={"session_id": str(session_id), "version": record.version, "reason": reason},
        )
        return record
