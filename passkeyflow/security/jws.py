"""Signed assertions (JWT compact serialization)."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Callable, Dict, Iterable, Optional

import jwt

from ..constants import CLIENT_ASSERTION_TYP, MAX_ASSERTION_TTL_SECONDS
from ..errors import AssertionExpired, AssertionVerificationError, SignatureInvalid

logger = logging.getLogger(__name__)

SIGNING_ALGORITHM = "RS256"
REQUIRED_CLAIMS = ["iss", "aud", "iat", "exp", "jti"]


def sign_assertion(
    claims: Dict[str, Any],
    signing_key: Any,
    key_id: str,
    typ: str = CLIENT_ASSERTION_TYP,
) -> str:
    """Sign ``claims`` with RS256 and return the compact token."""
    return jwt.encode(
        claims,
        signing_key,
        algorithm=SIGNING_ALGORITHM,
        headers={"kid": key_id, "typ": typ},
    )


def verify_assertion(
    token: str,
    public_key: Any,
    audience: Optional[str | Iterable[str]] = None,
    leeway: float = 0,
) -> Dict[str, Any]:
    """Verify ``token`` and return its claims.

    Raises:
        AssertionExpired: If the token is past its ``exp``.
        SignatureInvalid: If the token was altered or signed by another key.
        AssertionVerificationError: For any other claim violation.
    """
    options = {"require": list(REQUIRED_CLAIMS)}
    if audience is None:
        options["verify_aud"] = False
    try:
        return jwt.decode(
            token,
            public_key,
            algorithms=[SIGNING_ALGORITHM],
            audience=audience,
            leeway=leeway,
            options=options,
        )
    except jwt.ExpiredSignatureError as e:
        raise AssertionExpired(str(e)) from e
    except jwt.DecodeError as e:
        raise SignatureInvalid(str(e)) from e
    except jwt.InvalidTokenError as e:
        raise AssertionVerificationError(str(e)) from e


class AssertionSigner:
    """Issues single-use client assertions authenticating the merchant.

    Each assertion is valid for at most two minutes and carries a fresh
    ``jti``.
    """

    def __init__(
        self,
        signing_key: Any,
        client_id: str,
        audience: list[str],
        key_id: Optional[str] = None,
        issuer: Optional[str] = None,
        ttl_seconds: int = MAX_ASSERTION_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not 0 < ttl_seconds <= MAX_ASSERTION_TTL_SECONDS:
            raise ValueError(
                f"Assertion ttl must be between 1 and {MAX_ASSERTION_TTL_SECONDS} seconds"
            )
        self.signing_key = signing_key
        self.client_id = client_id
        self.audience = audience
        self.key_id = key_id or client_id
        self.issuer = issuer or client_id
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def client_assertion(self) -> str:
        """Return a freshly signed client assertion."""
        now = int(self._clock())
        claims = {
            "aud": self.audience,
            "iss_knd": "CLIENT_ID",
            "iss": self.issuer,
            "iat": now,
            "exp": now + self.ttl_seconds,
            "jti": str(uuid.uuid4()),
        }
        token = sign_assertion(claims, self.signing_key, self.key_id)
        logger.debug(f"Issued client assertion jti={claims['jti']}")
        return token

    def request_object(self, claims: Dict[str, Any], typ: str, ttl_seconds: int) -> str:
        """Sign an authorization request object on behalf of the merchant."""
        now = int(self._clock())
        body = {
            "iss": self.issuer,
            "aud": self.audience,
            "iat": now,
            "exp": now + ttl_seconds,
            "jti": str(uuid.uuid4()),
            **claims,
        }
        return sign_assertion(body, self.signing_key, self.key_id, typ=typ)
