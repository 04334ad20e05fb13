"""Step-up challenge collaborators producing trust-chain evidence."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Protocol

from pydantic import BaseModel

from .authorization.models import (
    AnchorAuthentication,
    SurrogateAuthentication,
    TrustAnchor,
    TrustChain,
    TrustSurrogate,
)

logger = logging.getLogger(__name__)


class StepUpStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


class StepUpOutcome(BaseModel):
    """Result of an out-of-band strong authentication."""

    status: StepUpStatus
    trust_chain: Optional[TrustChain] = None
    description: str = ""

    @property
    def succeeded(self) -> bool:
        return self.status is StepUpStatus.SUCCESS and self.trust_chain is not None


class StepUpChallenger(Protocol):
    """Runs an issuer-driven challenge when passkey enrollment is unknown."""

    async def challenge(self, credential_ref: str, amount: str, currency: str) -> StepUpOutcome:
        """Challenge the cardholder and return the evidence."""


class SimulatedStepUpChallenger:
    """3-D Secure style challenge that approves (or declines) immediately.

    The produced anchor references a fresh ACS transaction id, as a real
    access control server would return after a frictionless challenge.
    """

    def __init__(self, approve: bool = True, source_hint: str = "CRD") -> None:
        self.approve = approve
        self.source_hint = source_hint

    async def challenge(self, credential_ref: str, amount: str, currency: str) -> StepUpOutcome:
        if not credential_ref:
            return StepUpOutcome(
                status=StepUpStatus.FAILURE, description="Payment credential is required"
            )
        if not self.approve:
            logger.info("Simulated step-up challenge declined")
            return StepUpOutcome(
                status=StepUpStatus.FAILURE, description="Cardholder authentication declined"
            )

        acs_transaction_id = str(uuid.uuid4())
        trust_chain = TrustChain(
            anchor=TrustAnchor(
                authentication=[
                    AnchorAuthentication(
                        protocol="TDS",
                        source_hint=self.source_hint,
                        source_id_hint="ACS_TNX_ID",
                        source_id=acs_transaction_id,
                        time=datetime.now(timezone.utc).isoformat(),
                    )
                ]
            ),
            surrogate=TrustSurrogate(authentication=[SurrogateAuthentication(time=None)]),
        )
        logger.info(f"Simulated step-up challenge approved acs_transaction_id={acs_transaction_id}")
        return StepUpOutcome(status=StepUpStatus.SUCCESS, trust_chain=trust_chain)
