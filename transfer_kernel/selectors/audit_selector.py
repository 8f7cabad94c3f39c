"""
Module: transfer_kernel.selectors.audit_selector
Responsibility: Read the audit trail of a case as frozen, seq-ordered DTOs.
Architecture position: Kernel > Selectors.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterator
from uuid import UUID

from sqlalchemy import func, select

from transfer_kernel.models.audit_log import AuditLogEntry
from transfer_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class AuditEntryView:
    id: UUID
    seq: int
    case_id: UUID
    actor_id: str
    action: str
    detail: str
    from_stage_id: UUID | None
    to_stage_id: UUID | None
    payload: dict[str, Any] | None
    occurred_at: datetime
    ip_address: str | None
    user_agent: str | None


@dataclass(frozen=True)
class AuditTrail:
    """All audit entries of one case, ascending by seq."""

    case_id: UUID
    entries: tuple[AuditEntryView, ...]

    def __iter__(self) -> Iterator[AuditEntryView]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def actions(self) -> list[str]:
        return [e.action for e in self.entries]

    def of_action(self, action: str) -> tuple[AuditEntryView, ...]:
        value = getattr(action, "value", action)
        return tuple(e for e in self.entries if e.action == value)


class AuditSelector(BaseSelector):

    def trail(self, case_id: UUID) -> AuditTrail:
        rows = self.session.execute(
            select(AuditLogEntry)
            .where(AuditLogEntry.case_id == case_id)
            .order_by(AuditLogEntry.seq)
        ).scalars().all()
        return AuditTrail(
            case_id=case_id,
            entries=tuple(
                AuditEntryView(
                    id=r.id,
                    seq=r.seq,
                    case_id=r.case_id,
                    actor_id=r.actor_id,
                    action=r.action,
                    detail=r.detail,
                    from_stage_id=r.from_stage_id,
                    to_stage_id=r.to_stage_id,
                    payload=dict(r.payload) if r.payload is not None else None,
                    occurred_at=r.occurred_at,
                    ip_address=r.ip_address,
                    user_agent=r.user_agent,
                )
                for r in rows
            ),
        )

    def count(self, case_id: UUID | None = None) -> int:
        stmt = select(func.count()).select_from(AuditLogEntry)
        if case_id is not None:
            stmt = stmt.where(AuditLogEntry.case_id == case_id)
        return int(self.session.execute(stmt).scalar_one())
