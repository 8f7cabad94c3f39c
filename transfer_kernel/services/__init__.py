"""Kernel write services: audit trail and sequence allocation."""

from transfer_kernel.services.audit_service import AuditService
from transfer_kernel.services.base import BaseService
from transfer_kernel.services.sequence_service import SequenceService

__all__ = ["AuditService", "BaseService", "SequenceService"]
