import json
import logging

from sqlalchemy import text
from sqlalchemy.orm import Session


logger = logging.getLogger(__name__)


def audit(
    db: Session,
    user_id: str | None,
    action: str,
    target: str | None = None,
    meta: dict | None = None,
    *,
    ip: str = "unknown",
    user_agent: str = "unknown",
) -> None:
    """Best effort: a failed audit write is logged and never fails the request."""
    try:
        db.execute(
            text("SELECT lab_fun_audit(:user_id, :action, :target, CAST(:meta AS jsonb), :ip, :ua)"),
            {
                "user_id": user_id,
                "action": action,
                "target": target or "",
                "meta": json.dumps(meta, default=str) if meta is not None else "null",
                "ip": ip,
                "ua": user_agent,
            },
        )
        db.commit()
    except Exception as exc:
        db.rollback()
        logger.warning("audit failed (%s): %s", action, exc)
