"""Construction of the two authorization detail variants."""

from __future__ import annotations

import re
import time
import uuid
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from .models import (
    Account,
    AnchorAuthentication,
    BindingPreferences,
    CredentialBinding,
    Notification,
    Payee,
    Payer,
    PaymentTransaction,
    TransactionDetails,
    TrustAnchor,
    TrustChain,
)

Amount = Union[str, int, Decimal]

_SCHEME = re.compile(r"^https?://", re.IGNORECASE)


def payee_for(merchant_origin: str, merchant_name: str) -> Payee:
    """Build a payee from a merchant origin such as ``https://shop.example``."""
    origin = _SCHEME.sub("", merchant_origin.strip()).rstrip("/")
    return Payee(origin=origin, name=merchant_name)


def format_amount(amount: Amount) -> str:
    """Render ``amount`` as a decimal string.

    Floats are refused.
    """
    if isinstance(amount, (float, bool)):
        raise TypeError("amount must be a str, int or Decimal, not float")
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation as e:
        raise ValueError(f"Invalid amount: {amount!r}") from e
    if not value.is_finite() or value < 0:
        raise ValueError(f"Invalid amount: {amount!r}")
    return format(value, "f")


def default_trust_chain(
    merchant_transaction_id: Optional[str] = None,
    source_hint: str = "CRD",
    issued_at: Optional[int] = None,
) -> TrustChain:
    """Single-entry trust chain anchored on the merchant's own transaction."""
    return TrustChain(
        anchor=TrustAnchor(
            authentication=[
                AnchorAuthentication(
                    source_hint=source_hint,
                    source_id=merchant_transaction_id or str(uuid.uuid4()),
                    time=str(int(time.time()) if issued_at is None else issued_at),
                )
            ]
        )
    )


def _payer(credential_ref: str) -> Payer:
    if not credential_ref:
        raise ValueError("credential reference is required")
    return Payer(account=Account(id=credential_ref))


def build_registration_detail(
    credential_ref: str,
    payee: Payee,
    notify_email: Optional[str],
    trust_chain: Optional[TrustChain] = None,
    merchant_transaction_id: Optional[str] = None,
    source_hint: str = "CRD",
) -> CredentialBinding:
    """Build the credential-binding detail.

    An explicitly supplied ``trust_chain`` (step-up evidence) always
    overrides the default merchant-anchored chain.
    """
    chain = trust_chain or default_trust_chain(merchant_transaction_id, source_hint)
    return CredentialBinding(
        payer=_payer(credential_ref),
        payee=payee,
        preferences=BindingPreferences(
            notification=Notification(email=notify_email) if notify_email else None
        ),
        trustchain=chain,
    )


def build_authentication_detail(
    credential_ref: str,
    payee: Payee,
    amount: Amount,
    currency: str,
) -> PaymentTransaction:
    """Build the payment-transaction detail used to probe for a passkey."""
    if not currency:
        raise ValueError("currency is required")
    return PaymentTransaction(
        payer=_payer(credential_ref),
        payee=payee,
        details=TransactionDetails(amount=format_amount(amount), currency=currency.upper()),
    )
