"""ORM-level guards on stage pointers and the seeded workflow catalog."""

import pytest
from sqlalchemy import select

from transfer_kernel.db.immutability import stage_pointer_writer
from transfer_kernel.exceptions import ImmutabilityViolationError
from transfer_kernel.models.workflow import WorkflowStage, WorkflowTransition


class TestStagePointer:
    def test_pointer_write_outside_executor_rejected(self, session, new_case, stage_id):
        new_case.current_stage_id = stage_id("COMPLETED")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert "transition executor" in str(exc_info.value)

    def test_previous_pointer_is_protected_too(self, session, new_case, stage_id):
        new_case.previous_stage_id = stage_id("APPROVED")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_other_fields_remain_writable(self, session, new_case):
        new_case.application_no = "APP-RENUMBERED"
        session.flush()

    def test_writer_scope_is_reentrant(self, session, new_case, stage_id):
        with stage_pointer_writer(session):
            with stage_pointer_writer(session):
                pass
            new_case.current_stage_id = stage_id("UNDER_SCRUTINY")
            session.flush()
        assert not session.info.get("transfer_kernel.stage_pointer_writer")


class TestCatalogRows:
    def test_stage_rename_rejected(self, session, seeded_catalog):
        stage = session.execute(
            select(WorkflowStage).where(WorkflowStage.code == "SUBMITTED")
        ).scalar_one()
        stage.name = "Filed"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_edge_delete_rejected(self, session, seeded_catalog):
        edge = session.execute(select(WorkflowTransition)).scalars().first()
        session.delete(edge)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
