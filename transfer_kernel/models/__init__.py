"""Domain models for the transfer kernel."""

from transfer_kernel.models.accounts import AccountsBreakdown
from transfer_kernel.models.application import Application, Attachment
from transfer_kernel.models.audit_log import (
    AUDIT_LOG_BACKFILL_FIELDS,
    AuditAction,
    AuditLogEntry,
)
from transfer_kernel.models.clearance import Clearance, Review
from transfer_kernel.models.deed import TransferDeed
from transfer_kernel.models.party import Person, Plot
from transfer_kernel.models.sequence import SequenceCounter
from transfer_kernel.models.workflow import WorkflowStage, WorkflowTransition

__all__ = [
    "AccountsBreakdown",
    "Application",
    "Attachment",
    "AUDIT_LOG_BACKFILL_FIELDS",
    "AuditAction",
    "AuditLogEntry",
    "Clearance",
    "Review",
    "TransferDeed",
    "Person",
    "Plot",
    "SequenceCounter",
    "WorkflowStage",
    "WorkflowTransition",
]
