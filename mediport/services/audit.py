"""Audit logging for PII access (compliance tracking)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable
from uuid import UUID

from sqlalchemy.orm import Session

from mediport.models.entities import AuditLog

logger = logging.getLogger(__name__)


@dataclass
class AuditEvent:
    actor: str
    action: str
    success: bool
    resource_type: str
    resource_id: UUID | str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


AuditSink = Callable[[AuditEvent], None]


def emit(sink: AuditSink | None, event: AuditEvent) -> None:
    """Fire-and-forget delivery: a failing sink never blocks the caller."""
    if sink is None:
        return
    try:
        sink(event)
    except Exception:
        logger.exception("Audit sink failed for %s %s", event.action, event.resource_type)


def logging_sink(event: AuditEvent) -> None:
    """Write the event to the application log only."""
    logger.info(
        "AUDIT: %s %s %s/%s success=%s",
        event.actor,
        event.action,
        event.resource_type,
        event.resource_id,
        event.success,
    )


def log_action(
    db: Session,
    *,
    actor: str,
    action: str,
    resource_type: str,
    resource_id: UUID | None,
    success: bool = True,
    detail: dict[str, Any] | None = None,
) -> None:
    """Write an immutable audit log entry."""
    entry = AuditLog(
        actor=actor,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        success=success,
        detail=detail,
    )
    db.add(entry)
    db.flush()
    logger.info("AUDIT: %s %s %s/%s", actor, action, resource_type, resource_id)


def database_sink(db: Session) -> AuditSink:
    """
    Sink that records events as AuditLog rows in the caller's session.
    Each write runs in a savepoint, so a failed insert leaves the
    surrounding transaction usable.
    """

    def _write(event: AuditEvent) -> None:
        resource_id = event.resource_id
        if isinstance(resource_id, str):
            resource_id = UUID(resource_id)
        with db.begin_nested():
            log_action(
                db,
                actor=event.actor,
                action=event.action,
                resource_type=event.resource_type,
                resource_id=resource_id,
                success=event.success,
                detail=event.metadata,
            )

    return _write
