import uuid, json
from sqlalchemy.orm import Session
from app.models.audit_log import AuditLog

SYSTEM_ACTOR = "system"


def log_audit(db: Session, actor_user_id: str | None, action: str, entity_type: str, entity_id: str, details: dict | None = None) -> AuditLog:
    """Stage an audit row; it is committed together with the caller's write."""
    row = AuditLog(
        id=str(uuid.uuid4()),
        actor_user_id=actor_user_id or SYSTEM_ACTOR,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details_json=json.dumps(details or {}, ensure_ascii=False, default=str),
    )
    db.add(row)
    return row


def history(db: Session, entity_type: str, entity_id: str) -> list[AuditLog]:
    return (
        db.query(AuditLog)
        .filter(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
        .order_by(AuditLog.created_at.asc())
        .all()
    )


def serialize(row: AuditLog) -> dict:
    return {
        "id": row.id,
        "actorUserId": row.actor_user_id,
        "action": row.action,
        "entityType": row.entity_type,
        "entityId": row.entity_id,
        "details": json.loads(row.details_json or "{}"),
        "createdAt": row.created_at.isoformat() if row.created_at else None,
    }
