from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from models.lending_models import AuditLog


def log_audit(db: Session, entity_type: str, entity_id: int, action: str, details: str | None = None, user_id: int | None = None) -> None:
    db.add(
        AuditLog(
            EntityType=entity_type,
            EntityID=entity_id,
            Action=action,
            Details=details,
            UserID=user_id,
            CreatedAt=datetime.now(),
        )
    )


def get_history(db: Session, entity_type: str, entity_id: int) -> list[dict]:
    rows = db.execute(
        select(AuditLog)
        .where(AuditLog.EntityType == entity_type)
        .where(AuditLog.EntityID == entity_id)
        .order_by(AuditLog.AuditID.desc())
    ).scalars().all()
    return [
        {
            "auditID": row.AuditID,
            "action": row.Action,
            "details": row.Details,
            "userID": row.UserID,
            "createdAt": row.CreatedAt,
        }
        for row in rows
    ]
