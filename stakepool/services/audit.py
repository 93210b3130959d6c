"""
Audit trail helpers.

Events are added to the caller's session and committed together with the
change they describe, so a rolled-back operation leaves no audit residue.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from stakepool.core.enums import AuditEventType
from stakepool.models import AuditEvent

logger = logging.getLogger(__name__)


def record_event(
    db: Session,
    actor: str,
    event_type: AuditEventType,
    description: str,
    **details,
) -> AuditEvent:
    """Stage an audit event on ``db`` (no commit)."""
    audit = AuditEvent(
        actor=actor,
        event_type=event_type,
        description=description,
        details=details or None,
    )
    db.add(audit)
    logger.debug("Audit %s by %s: %s", event_type.value, actor, description)
    return audit


def recent_events(
    db: Session,
    limit: int = 100,
    event_type: Optional[AuditEventType] = None,
) -> List[AuditEvent]:
    query = db.query(AuditEvent)
    if event_type is not None:
        query = query.filter(AuditEvent.event_type == event_type)
    return query.order_by(AuditEvent.id.desc()).limit(limit).all()
