"""
transfer_services.ownership -- Plot ownership collaborator.

DeedService hands the ownership change to a ``PlotOwnershipRegistry`` so the
land-records side can be swapped (a SQL table here, a stub in tests).
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy.orm import Session

from transfer_kernel.exceptions import RecordNotFoundError
from transfer_kernel.logging_config import get_logger
from transfer_kernel.models.party import Plot

logger = get_logger("services.ownership")


@runtime_checkable
class PlotOwnershipRegistry(Protocol):
    """Records that a plot now belongs to a new owner."""

    def transfer_ownership(self, plot_id: UUID, from_owner_id: UUID, to_owner_id: UUID) -> None:
        ...


class SqlPlotOwnershipRegistry:
    """Rewrites ``plots.current_owner_id`` in the caller's transaction."""

    def __init__(self, session: Session):
        self.session = session

    def transfer_ownership(self, plot_id: UUID, from_owner_id: UUID, to_owner_id: UUID) -> None:
        plot = self.session.get(Plot, plot_id)
        if plot is None:
            raise RecordNotFoundError("Plot", str(plot_id), "Plot not found")

        previous = plot.current_owner_id
        if previous is not None and previous != from_owner_id:
            logger.warning(
                "plot_owner_mismatch",
                extra={
                    "plot_id": str(plot_id),
                    "recorded_owner_id": str(previous),
                    "seller_id": str(from_owner_id),
                },
            )
        plot.current_owner_id = to_owner_id
        self.session.flush()
        logger.info(
            "plot_ownership_transferred",
            extra={
                "plot_id": str(plot_id),
                "from_owner_id": str(from_owner_id),
                "to_owner_id": str(to_owner_id),
            },
        )
