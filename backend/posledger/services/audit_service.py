# Overview: Service-layer operations for the admin audit log.

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select

from ..models import AdminLog
from ..time_utils import utcnow
"""
Audit Log Invariants (authoritative)

- Append-only; rows are never updated or deleted (period archival keeps them).
- Written in its own transaction AFTER the mutation it describes committed.
- Best-effort: a failed audit write is logged and swallowed, it never rolls
  back or blocks the primary mutation.
"""

logger = logging.getLogger("posledger.audit")


class AuditLog:
    def __init__(self, gateway):
        self.gateway = gateway

    def record(
        self,
        action_type: str,
        affected: str,
        details: str = "",
        *,
        actor: Optional[str] = None,
        section: Optional[str] = None,
    ) -> Optional[AdminLog]:
        """Append one audit record. Returns None when the write failed."""
        def _op(uow):
            entry = AdminLog(
                action_type=action_type,
                affected=affected[:255],
                details=details or "",
                actor=actor or "system",
                section=section,
                timestamp=utcnow(),
            )
            uow.session.add(entry)
            uow.session.flush()
            uow.emit_entity(entry, actor_id=actor)
            return entry

        try:
            return self.gateway.run(_op)
        except Exception:
            logger.warning("Failed to write audit log entry %s for %s", action_type, affected, exc_info=True)
            return None

    def list(self, section: Optional[str] = None, limit: int = 100) -> list[AdminLog]:
        def _op(uow):
            stmt = select(AdminLog).order_by(AdminLog.timestamp.desc())
            if section is not None:
                stmt = stmt.where(AdminLog.section == section)
            return list(uow.session.scalars(stmt.limit(limit)))

        return self.gateway.run(_op)
