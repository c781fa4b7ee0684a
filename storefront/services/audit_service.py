import uuid, json
from sqlalchemy.orm import Session
from storefront.models.audit_log import AuditLog

def log_audit(db: Session, actor: str, action: str, entity_type: str, entity_id: str, details: dict | None = None):
    # Caller commits.
    db.add(AuditLog(
        id=str(uuid.uuid4()),
        actor=actor or "",
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id or ""),
        details_json=json.dumps(details or {}, ensure_ascii=False, default=str),
    ))
