"""Flow session state carried through every transition."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..authorization.builder import format_amount
from ..authorization.models import TrustChain
from ..errors import FailureCode


class FlowState(str, Enum):
    IDLE = "Idle"
    INITIALIZING = "Initializing"
    AWAITING_DEVICE_PROFILE = "AwaitingDeviceProfile"
    READY_FOR_PAR = "ReadyForPAR"
    PAR_IN_FLIGHT = "PARInFlight"
    STEP_UP_REQUIRED = "StepUpRequired"
    STEP_UP_IN_FLIGHT = "StepUpInFlight"
    PAR_RETRY_IN_FLIGHT = "PARRetryInFlight"
    AUTHORIZATION_HANDOFF = "AuthorizationHandoff"
    COMPLETED = "Completed"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (FlowState.COMPLETED, FlowState.FAILED)

    @property
    def is_active(self) -> bool:
        return self is not FlowState.IDLE and not self.is_terminal

    @property
    def awaits_widget(self) -> bool:
        """States left only by an inbound message (or a timeout)."""
        return self in (
            FlowState.INITIALIZING,
            FlowState.AWAITING_DEVICE_PROFILE,
            FlowState.AUTHORIZATION_HANDOFF,
        )


class FlowType(str, Enum):
    REGISTRATION = "registration"
    AUTHENTICATION = "authentication"


class FlowIntent(BaseModel):
    """What the payer asked for: the credential, payee and amount."""

    model_config = ConfigDict(frozen=True)

    credential_ref: str = Field(..., min_length=1, repr=False)
    merchant_name: str
    amount: str = "0"
    currency: str = Field(default="USD", min_length=3, max_length=3)
    notify_email: Optional[str] = None
    merchant_transaction_id: Optional[str] = None

    @field_validator("currency", mode="before")
    @classmethod
    def _currency(cls, v: str) -> str:
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("amount", mode="before")
    @classmethod
    def _amount(cls, v: Union[str, int, Decimal]) -> str:
        try:
            return format_amount(v)
        except TypeError as e:
            raise ValueError(str(e)) from e

    @property
    def masked_credential(self) -> str:
        return f"****{self.credential_ref[-4:]}"


class FlowFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: FailureCode
    description: str = ""


class FlowSession(BaseModel):
    """One authorization attempt, replaced (never mutated) on each transition."""

    model_config = ConfigDict(frozen=True)

    correlation_id: str = ""
    flow_type: FlowType = FlowType.REGISTRATION
    state: FlowState = FlowState.IDLE
    intent: Optional[FlowIntent] = None
    merchant_origin: str = ""
    integrator_origin: str = ""
    server_state_token: Optional[str] = Field(default=None, repr=False)
    data_center_hint: Optional[str] = None
    dfp_session_id: Optional[str] = None
    trust_chain: Optional[TrustChain] = None
    code_verifier: Optional[str] = Field(default=None, repr=False)
    code_challenge: Optional[str] = None
    oauth_state: Optional[str] = None
    authorization_ref: Optional[str] = None
    authorization_url: Optional[str] = None
    par_attempts: int = 0
    failure: Optional[FlowFailure] = None
    result: Optional[Dict[str, Any]] = None
    history: Tuple[FlowState, ...] = (FlowState.IDLE,)

    def advance(self, state: FlowState, **changes: Any) -> "FlowSession":
        """Return a copy in ``state`` with ``changes`` applied."""
        return self.model_copy(
            update={"state": state, "history": self.history + (state,), **changes}
        )

    def update(self, **changes: Any) -> "FlowSession":
        """Return a copy with ``changes`` applied, keeping the state."""
        return self.model_copy(update=changes)

    def fail(self, code: FailureCode, description: str = "") -> "FlowSession":
        return self.advance(FlowState.FAILED, failure=FlowFailure(code=code, description=description))

    @property
    def ready_for_par(self) -> bool:
        return bool(self.server_state_token and self.dfp_session_id)
