"""
Audit logging service for tracking critical actions.

Audit writes are a side channel: they run after the business transaction has
committed, in their own commit, and never raise.
"""
from retailpos.models.audit_log import AuditLog, AuditAction
from flask import has_request_context, request
from typing import Any, Callable, Dict, List, Optional, Tuple
from datetime import datetime
import json
import logging

logger = logging.getLogger(__name__)


def _json_safe(values: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Round-trip through json so Decimals, dates and enums become plain values."""
    if values is None:
        return None
    try:
        return json.loads(json.dumps(values, default=str))
    except (TypeError, ValueError) as e:
        logger.warning(f"Failed to serialize audit details: {e}")
        return {'repr': str(values)}


def _request_metadata() -> Tuple[Optional[str], Optional[str]]:
    if not has_request_context():
        return None, None
    return request.remote_addr, (request.headers.get('User-Agent') or '')[:255]


class AuditRecorder:
    """Best-effort appender of AuditLog entries."""

    def __init__(self, session_getter: Callable):
        self._session_getter = session_getter

    def record(
        self,
        action,
        entity: str,
        entity_id=None,
        user_id: Optional[int] = None,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """
        Append one audit entry and commit it.

        Args:
            action: AuditAction (or plain string tag)
            entity: Type of entity affected (e.g., 'order', 'product')
            entity_id: ID of the affected entity
            user_id: Acting user, absent for anonymous failures
            old_values / new_values: snapshots, JSON encoded

        Returns the entry, or None if it could not be written.
        """
        session = None
        try:
            session = self._session_getter()
            ip_address, user_agent = _request_metadata()
            action_value = action.value if isinstance(action, AuditAction) else str(action)

            entry = AuditLog(
                user_id=user_id,
                action=action_value,
                entity=entity,
                entity_id=str(entity_id) if entity_id is not None else None,
                old_values=_json_safe(old_values),
                new_values=_json_safe(new_values),
                ip_address=ip_address,
                user_agent=user_agent,
            )
            session.add(entry)
            session.commit()

            logger.info(f"Audit log created: {action_value} by user {user_id} on {entity} {entity_id}")
            return entry

        except Exception as e:
            # Audit failures must not break business logic
            logger.error(f"Failed to create audit log: {e}")
            if session is not None:
                try:
                    session.rollback()
                except Exception as rollback_error:
                    logger.error(f"Rollback after audit failure also failed: {rollback_error}")
            return None


def get_audit_logs(
    session,
    entity: str = None,
    entity_id=None,
    user_id: int = None,
    action: str = None,
    start_date: datetime = None,
    end_date: datetime = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[AuditLog], int]:
    """
    Retrieve audit logs with optional filters, newest first.

    Returns:
        (logs, total) where total ignores limit/offset
    """
    query = session.query(AuditLog)

    if entity:
        query = query.filter(AuditLog.entity == entity)
    if entity_id is not None:
        query = query.filter(AuditLog.entity_id == str(entity_id))
    if user_id:
        query = query.filter(AuditLog.user_id == user_id)
    if action:
        query = query.filter(AuditLog.action == action)
    if start_date:
        query = query.filter(AuditLog.created_at >= start_date)
    if end_date:
        query = query.filter(AuditLog.created_at <= end_date)

    total = query.count()
    logs = (query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .limit(limit)
            .offset(offset)
            .all())
    return logs, total
