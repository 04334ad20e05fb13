"""Authorization detail models and builders."""

from .builder import (
    build_authentication_detail,
    build_registration_detail,
    default_trust_chain,
    format_amount,
    payee_for,
)
from .models import (
    AnchorAuthentication,
    AuthorizationDetail,
    CredentialBinding,
    Payee,
    PaymentTransaction,
    TrustAnchor,
    TrustChain,
    TrustSurrogate,
)

__all__ = [
    "AnchorAuthentication",
    "AuthorizationDetail",
    "CredentialBinding",
    "Payee",
    "PaymentTransaction",
    "TrustAnchor",
    "TrustChain",
    "TrustSurrogate",
    "build_authentication_detail",
    "build_registration_detail",
    "default_trust_chain",
    "format_amount",
    "payee_for",
]
