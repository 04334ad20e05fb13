"""Pydantic models describing PAR authorization details."""

from __future__ import annotations

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..constants import (
    CREDENTIAL_BINDING_TYPE,
    FIDO2_AMR,
    PAN_SCHEME,
    PAYMENT_TRANSACTION_TYPE,
    SOURCE_HINT_SERVER_STATE,
)


class Account(BaseModel):
    scheme: str = PAN_SCHEME
    id: str = Field(..., repr=False, description="Payment credential reference")


class Payer(BaseModel):
    account: Account


class Payee(BaseModel):
    """Merchant receiving the payment; ``origin`` carries no scheme."""

    origin: str
    name: str


class SourceHint(BaseModel):
    source_hint: Literal["SERVER_STATE"] = SOURCE_HINT_SERVER_STATE


class Confinements(BaseModel):
    """Origin and device binding, always resolved from server-held state."""

    origin: SourceHint = Field(default_factory=SourceHint)
    device: SourceHint = Field(default_factory=SourceHint)


class Notification(BaseModel):
    email: str


class BindingPreferences(BaseModel):
    notification: Optional[Notification] = None


class TransactionPreferences(BaseModel):
    pass


class AnchorAuthentication(BaseModel):
    """Issuer-side evidence of a completed strong authentication."""

    model_config = ConfigDict(frozen=True)

    protocol: str = "TDS"
    source_hint: str = "CRD"
    amr: List[str] = Field(default_factory=list)
    source_id_hint: str = "ACS_TNX_ID"
    source_id: str
    time: Optional[str] = None


class SurrogateAuthentication(BaseModel):
    model_config = ConfigDict(frozen=True)

    amr_values: List[str] = Field(default_factory=lambda: [FIDO2_AMR])
    time: Optional[str] = ""


class TrustAnchor(BaseModel):
    model_config = ConfigDict(frozen=True)

    authentication: List[AnchorAuthentication]


class TrustSurrogate(BaseModel):
    model_config = ConfigDict(frozen=True)

    authentication: List[SurrogateAuthentication] = Field(
        default_factory=lambda: [SurrogateAuthentication()]
    )


class TrustChain(BaseModel):
    """Evidence bundle attached to a credential binding after step-up."""

    model_config = ConfigDict(frozen=True)

    anchor: TrustAnchor
    surrogate: TrustSurrogate = Field(default_factory=TrustSurrogate)


class TransactionDetails(BaseModel):
    amount: str
    currency: str
    label: str = "Total"


class CredentialBinding(BaseModel):
    """Registration intent: bind the payer's credential to a new passkey."""

    type: Literal["com_visa_payment_credential_binding"] = CREDENTIAL_BINDING_TYPE
    payer: Payer
    payee: Payee
    preferences: BindingPreferences
    confinements: Confinements = Field(default_factory=Confinements)
    trustchain: TrustChain


class PaymentTransaction(BaseModel):
    """Authentication intent: approve a payment with an existing passkey."""

    type: Literal["com_visa_payment_transaction"] = PAYMENT_TRANSACTION_TYPE
    payer: Payer
    payee: Payee
    details: TransactionDetails
    preferences: TransactionPreferences = Field(default_factory=TransactionPreferences)
    confinements: Confinements = Field(default_factory=Confinements)


AuthorizationDetail = Annotated[
    Union[CredentialBinding, PaymentTransaction], Field(discriminator="type")
]
