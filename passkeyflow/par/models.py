"""Pushed Authorization Request payloads and results."""

from __future__ import annotations

import base64
import hashlib
import secrets
import uuid
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator

from ..authorization.models import AuthorizationDetail, CredentialBinding
from ..constants import CLIENT_ASSERTION_TYPE, FIDO2_AMR, RESPONSE_MODE_WEB_MESSAGE
from ..errors import FailureCode


def generate_pkce_pair() -> tuple[str, str]:
    """Return a ``(code_verifier, code_challenge)`` pair using S256."""
    verifier = secrets.token_urlsafe(32)
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return verifier, challenge


class PARRequest(BaseModel):
    """Outbound PAR payload.

    ``code_challenge`` is populated only for a credential binding; the
    payment-transaction probe sends an empty string.
    """

    response_type: str = "code"
    response_mode: str = RESPONSE_MODE_WEB_MESSAGE
    scope: str = "openid"
    server_state: Optional[str] = None
    state: str = Field(default_factory=lambda: str(uuid.uuid4()))
    redirect_uri: str
    prompt: Literal["create", "login"]
    amr_values: List[str] = Field(default_factory=lambda: [FIDO2_AMR])
    code_challenge_method: str = "S256"
    code_challenge: str = ""
    ui_locales: List[str] = Field(default_factory=lambda: ["en"])
    authorization_details: List[AuthorizationDetail] = Field(..., min_length=1, max_length=1)
    client_assertion_type: str = CLIENT_ASSERTION_TYPE
    client_assertion: Optional[str] = None

    @model_validator(mode="after")
    def _check_variant(self) -> "PARRequest":
        binding = isinstance(self.authorization_details[0], CredentialBinding)
        if binding and not self.code_challenge:
            raise ValueError("credential binding requires a code_challenge")
        if not binding and self.code_challenge:
            raise ValueError("payment transaction must not carry a code_challenge")
        expected_prompt = "create" if binding else "login"
        if self.prompt != expected_prompt:
            raise ValueError(f"prompt must be {expected_prompt!r} for this detail")
        return self

    @property
    def detail(self) -> AuthorizationDetail:
        return self.authorization_details[0]

    @classmethod
    def for_detail(
        cls,
        detail: AuthorizationDetail,
        server_state: Optional[str],
        redirect_uri: str,
        code_challenge: str = "",
        state: Optional[str] = None,
    ) -> "PARRequest":
        """Build a request whose prompt and challenge match ``detail``."""
        binding = isinstance(detail, CredentialBinding)
        kwargs = {"state": state} if state else {}
        return cls(
            server_state=server_state,
            redirect_uri=redirect_uri,
            prompt="create" if binding else "login",
            code_challenge=code_challenge if binding else "",
            authorization_details=[detail],
            **kwargs,
        )

    def to_payload(self) -> dict:
        """Serialize for the wire, omitting fields that are unset."""
        return self.model_dump(mode="json", exclude_none=True)


class PARSuccess(BaseModel):
    outcome: Literal["success"] = "success"
    request: str
    authorization_endpoint: str
    expires_in: Optional[int] = None

    @property
    def ok(self) -> bool:
        return True


class PARFailure(BaseModel):
    outcome: Literal["failure"] = "failure"
    code: FailureCode
    description: str = ""
    status_code: Optional[int] = None

    @property
    def ok(self) -> bool:
        return False


PARResult = Union[PARSuccess, PARFailure]
