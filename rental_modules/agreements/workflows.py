"""Rental Agreement Workflows.

State machine for the rental agreement lifecycle.
"""

from rental_kernel.domain.workflow import Guard, Transition, Workflow
from rental_kernel.logging_config import get_logger
from rental_modules.agreements.models import AgreementStatus

logger = get_logger("modules.agreements.workflows")

ACTIVE = AgreementStatus.ACTIVE.value
RENEWED = AgreementStatus.RENEWED.value
TERMINATED = AgreementStatus.TERMINATED.value
EXPIRED = AgreementStatus.EXPIRED.value


NO_OPEN_INVOICES = Guard("no_open_invoices", "All invoices of the agreement are fully paid")
PROPERTY_AVAILABLE = Guard("property_available", "No other active agreement holds the property")
END_DATE_PASSED = Guard("end_date_passed", "Agreement end date is before today")


RENTAL_AGREEMENT_LIFECYCLE = Workflow(
    name="rental_agreement_lifecycle",
    description="Rental agreement lifecycle from signing to renewal, termination or expiry",
    initial_state=ACTIVE,
    states=(ACTIVE, RENEWED, TERMINATED, EXPIRED),
    transitions=(
        Transition(ACTIVE, RENEWED, action="renew", guard=NO_OPEN_INVOICES),
        Transition(ACTIVE, RENEWED, action="mark_renewed"),
        Transition(ACTIVE, TERMINATED, action="terminate"),
        Transition(ACTIVE, EXPIRED, action="expire", guard=END_DATE_PASSED),
        # A lapsed agreement can still be renewed
        Transition(EXPIRED, RENEWED, action="renew", guard=NO_OPEN_INVOICES),
    ),
    terminal_states=(RENEWED, TERMINATED),
)

logger.info(
    "rental_agreement_lifecycle_workflow_registered",
    extra={
        "workflow_name": RENTAL_AGREEMENT_LIFECYCLE.name,
        "state_count": len(RENTAL_AGREEMENT_LIFECYCLE.states),
        "transition_count": len(RENTAL_AGREEMENT_LIFECYCLE.transitions),
    },
)
