"""Shared actors, document set and collaborator stubs for the test suite."""

from uuid import UUID

from transfer_kernel.domain.workflow import ActorRef

REQUIRED_DOCUMENTS = (
    "AllotmentLetter",
    "PrevTransferDeed",
    "CNIC_Seller",
    "CNIC_Buyer",
    "UtilityBill_Latest",
    "Photo_Seller",
    "Photo_Buyer",
)

CLERK = ActorRef("clerk-1", "LRS")
OWO_OFFICER = ActorRef("owo-1", "OWO")
BCA_OFFICER = ActorRef("bca-1", "BCA")
HOUSING_OFFICER = ActorRef("housing-1", "HOUSING")
ACCOUNTS_OFFICER = ActorRef("accounts-1", "ACCOUNTS")
APPROVER = ActorRef("approver-1", "APPROVER")


class RecordingOwnershipRegistry:
    """Ownership collaborator stub that records every transfer."""

    def __init__(self):
        self.calls: list[tuple[UUID, UUID, UUID]] = []

    def transfer_ownership(self, plot_id: UUID, from_owner_id: UUID, to_owner_id: UUID) -> None:
        self.calls.append((plot_id, from_owner_id, to_owner_id))
