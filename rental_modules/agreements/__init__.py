"""
Rental Agreement Module (``rental_modules.agreements``).

Responsibility
--------------
Lifecycle of rental agreements (create, renew, terminate, expire),
sequential document numbering, the recurring rent template and the
security-deposit and rent invoices an agreement produces.

Architecture position
---------------------
**Modules layer** -- frozen domain models, a tenant state snapshot, pure
selectors and generators, and a service facade that returns
``MutationBatch`` instances for the host application to commit.

Invariants enforced
-------------------
* At most one ACTIVE agreement per property.
* An agreement with open invoices cannot be renewed.
* Renewal bills only the increase of the security deposit.
* Templates are deactivated whenever their agreement leaves ACTIVE.
* Issued document numbers never collide with existing ones.

Failure modes
-------------
* Typed ``rental_kernel.exceptions`` families: ``ValidationError``,
  ``PreconditionViolation`` and ``ConfigurationError``.
"""

from rental_modules.agreements.categories import CategoryBindings
from rental_modules.agreements.config import AgreementConfig
from rental_modules.agreements.invoicing import GeneratedDocuments, InvoiceGenerator
from rental_modules.agreements.models import (
    AgreementChanges,
    AgreementDraft,
    AgreementStatus,
    Category,
    CategoryRole,
    Invoice,
    InvoiceStatus,
    InvoiceType,
    ManualInvoiceKind,
    NumberingSeries,
    Property,
    RecurringChargeTemplate,
    RecurringFrequency,
    RefundAction,
    RefundTransaction,
    RenewalTerms,
    RentalAgreement,
    SeriesKind,
    TerminationRequest,
)
from rental_modules.agreements.numbering import (
    NumberAllocation,
    NumberAllocator,
    PersistentNumberAllocator,
    ScanNumberAllocator,
    allocate,
)
from rental_modules.agreements.scheduler import RecurringChargeScheduler, next_occurrence
from rental_modules.agreements.selectors import AgreementRepositoryView
from rental_modules.agreements.service import (
    AutoConfirm,
    ConfirmationPrompt,
    Confirmer,
    DocumentOutcome,
    ExpirySweepResult,
    InvoiceRunResult,
    LifecycleResult,
    RentalAgreementService,
)
from rental_modules.agreements.state import RentalState
from rental_modules.agreements.workflows import RENTAL_AGREEMENT_LIFECYCLE

__all__ = [
    "AgreementChanges",
    "AgreementConfig",
    "AgreementDraft",
    "AgreementRepositoryView",
    "AgreementStatus",
    "AutoConfirm",
    "Category",
    "CategoryBindings",
    "CategoryRole",
    "ConfirmationPrompt",
    "Confirmer",
    "DocumentOutcome",
    "ExpirySweepResult",
    "GeneratedDocuments",
    "Invoice",
    "InvoiceGenerator",
    "InvoiceRunResult",
    "InvoiceStatus",
    "InvoiceType",
    "LifecycleResult",
    "ManualInvoiceKind",
    "NumberAllocation",
    "NumberAllocator",
    "NumberingSeries",
    "PersistentNumberAllocator",
    "Property",
    "RENTAL_AGREEMENT_LIFECYCLE",
    "RecurringChargeScheduler",
    "RecurringChargeTemplate",
    "RecurringFrequency",
    "RefundAction",
    "RefundTransaction",
    "RenewalTerms",
    "RentalAgreement",
    "RentalAgreementService",
    "RentalState",
    "ScanNumberAllocator",
    "SeriesKind",
    "TerminationRequest",
    "allocate",
    "next_occurrence",
]
