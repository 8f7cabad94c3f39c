"""
Typed Exception Hierarchy for the Transfer Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from TransferKernelError:

    TransferKernelError (base)
    |
    +-- NotFoundError
    |   +-- CaseNotFoundError
    |   +-- StageNotFoundError
    |   +-- RecordNotFoundError
    |   +-- PersonNotFoundError
    |
    +-- TransitionError
    |   +-- InvalidTransitionError
    |   +-- InvalidGuardContextError
    |
    +-- DomainRuleError
    |   +-- InvalidAmountError
    |   +-- PaymentExceedsTotalError
    |   +-- DuplicateWitnessError
    |   +-- DeedAlreadyExistsError
    |   +-- DeedAlreadyFinalizedError
    |
    +-- ConfigurationError
    |   +-- CatalogValidationError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Not found       | CASE_NOT_FOUND              | Application ID doesn't exist
                | STAGE_NOT_FOUND             | Target stage ID/code doesn't exist
                | RECORD_NOT_FOUND            | Breakdown/deed/attachment missing
                | PERSON_NOT_FOUND            | Party or witness doesn't exist
----------------|-----------------------------|-----------------------------------------
Transition      | INVALID_TRANSITION          | No edge between current and target
                | INVALID_GUARD_CONTEXT       | Empty/malformed actor or stage ids
----------------|-----------------------------|-----------------------------------------
Domain rule     | INVALID_AMOUNT              | Negative fee or payment amount
                | PAYMENT_EXCEEDS_TOTAL       | Paid amount > breakdown total
                | DUPLICATE_WITNESS           | Same person used for both witnesses
                | DEED_ALREADY_EXISTS         | Second draft for one case
                | DEED_ALREADY_FINALIZED      | Finalize or edit after finalization
----------------|-----------------------------|-----------------------------------------
Config          | CATALOG_VALIDATION_FAILED   | Stage catalog YAML is inconsistent
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Audit row / catalog row / stage pointer
                |                             | / finalized deed modified

A guard that declines a transition is NOT an exception. It is reported
through ``TransitionResult.success == False`` with the guard's reason.
"""


class TransferKernelError(Exception):
    """
    Base exception for all transfer kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "TRANSFER_KERNEL_ERROR"


# Lookup exceptions


class NotFoundError(TransferKernelError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"


class CaseNotFoundError(NotFoundError):
    """Application with given ID was not found."""

    code: str = "CASE_NOT_FOUND"

    def __init__(self, case_id: str):
        self.case_id = str(case_id)
        super().__init__("Application not found")


class StageNotFoundError(NotFoundError):
    """Workflow stage with given ID or code was not found."""

    code: str = "STAGE_NOT_FOUND"

    def __init__(self, stage_ref: str):
        self.stage_ref = str(stage_ref)
        super().__init__(f"Target stage {stage_ref} not found")


class RecordNotFoundError(NotFoundError):
    """A case-scoped record (breakdown, deed, attachment) was not found."""

    code: str = "RECORD_NOT_FOUND"

    def __init__(self, record_type: str, reference: str, message: str | None = None):
        self.record_type = record_type
        self.reference = str(reference)
        super().__init__(message or f"{record_type} not found: {reference}")


class PersonNotFoundError(NotFoundError):
    """Party, witness or plot referenced by a command does not exist."""

    code: str = "PERSON_NOT_FOUND"

    def __init__(self, person_id: str, role: str = "person"):
        self.person_id = str(person_id)
        self.role = role
        super().__init__(f"{role.capitalize()} not found: {person_id}")


# Transition exceptions


class TransitionError(TransferKernelError):
    """Base exception for stage transition errors."""

    code: str = "TRANSITION_ERROR"


class InvalidTransitionError(TransitionError):
    """No edge exists from the case's current stage to the target."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, from_stage: str, to_stage: str):
        self.from_stage = from_stage
        self.to_stage = to_stage
        super().__init__(f"No transition found from {from_stage} to {to_stage}")


class InvalidGuardContextError(TransitionError):
    """Guard context failed validation before any guard ran."""

    code: str = "INVALID_GUARD_CONTEXT"

    def __init__(self, problems: list[str] | tuple[str, ...]):
        self.problems = list(problems)
        super().__init__("Invalid guard context")


# Domain rule exceptions


class DomainRuleError(TransferKernelError):
    """Base exception for domain-service rule violations."""

    code: str = "DOMAIN_RULE_ERROR"


class InvalidAmountError(DomainRuleError):
    """A monetary amount is negative or otherwise unusable."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, amount: object):
        self.field = field
        self.amount = str(amount)
        super().__init__(f"Invalid amount for {field}: {amount}")


class PaymentExceedsTotalError(DomainRuleError):
    """Paid amount is greater than the breakdown total."""

    code: str = "PAYMENT_EXCEEDS_TOTAL"

    def __init__(self, case_id: str, paid_amount: object, total_amount: object):
        self.case_id = str(case_id)
        self.paid_amount = str(paid_amount)
        self.total_amount = str(total_amount)
        super().__init__("Paid amount exceeds total amount")


class DuplicateWitnessError(DomainRuleError):
    """Both witness slots reference the same person."""

    code: str = "DUPLICATE_WITNESS"

    def __init__(self, witness_id: str):
        self.witness_id = str(witness_id)
        super().__init__("Two distinct witnesses are required")


class DeedAlreadyExistsError(DomainRuleError):
    """A transfer deed already exists for the case."""

    code: str = "DEED_ALREADY_EXISTS"

    def __init__(self, case_id: str):
        self.case_id = str(case_id)
        super().__init__("Transfer deed already exists for this application")


class DeedAlreadyFinalizedError(DomainRuleError):
    """The transfer deed was already finalized."""

    code: str = "DEED_ALREADY_FINALIZED"

    def __init__(self, case_id: str):
        self.case_id = str(case_id)
        super().__init__("Transfer deed already finalized")


# Configuration exceptions


class ConfigurationError(TransferKernelError):
    """Base exception for catalog and engine configuration errors."""

    code: str = "CONFIGURATION_ERROR"


class CatalogValidationError(ConfigurationError):
    """The workflow catalog failed validation."""

    code: str = "CATALOG_VALIDATION_FAILED"

    def __init__(self, catalog_name: str, errors: list[str] | tuple[str, ...]):
        self.catalog_name = catalog_name
        self.errors = list(errors)
        super().__init__(
            f"Catalog {catalog_name} failed validation: "
            f"{len(self.errors)} error(s): " + "; ".join(self.errors)
        )


# Immutability exceptions


class ImmutabilityError(TransferKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Audit log entries, stage catalog rows and finalized deeds are
    immutable. The case stage pointer is writable only by the
    transition executor.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
