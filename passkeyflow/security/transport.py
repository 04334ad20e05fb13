"""Transport-level authentication for calls to the network API."""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import ssl
import time
from typing import Callable, Dict, Optional

from ..config import CredentialsConfig, MutualTLSConfig
from ..errors import KeyNotFound, TransportAuthFailure
from .keys import read_pem

logger = logging.getLogger(__name__)


def pay_token(
    shared_secret: str,
    resource_path: str,
    query_string: str = "",
    body: str = "",
    timestamp: Optional[int] = None,
) -> str:
    """Compute the time-windowed HMAC transport token.

    The MAC covers ``timestamp + resource_path + query_string + body``. Pass
    an empty ``body`` when the request body is an encrypted envelope.
    """
    ts = int(time.time()) if timestamp is None else timestamp
    message = f"{ts}{resource_path}{query_string}{body}"
    digest = hmac.new(
        shared_secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return f"xv2:{ts}:{digest}"


class TransportSecurity:
    """Configures mutual TLS, Basic and HMAC credentials for the PAR client.

    All configured layers are applied together; none is a fallback for
    another.
    """

    def __init__(
        self,
        credentials: CredentialsConfig,
        mtls: MutualTLSConfig,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.credentials = credentials
        self.mtls = mtls
        self._clock = clock
        self._ssl_context: ssl.SSLContext | bool | None = None

    @property
    def hmac_enabled(self) -> bool:
        return bool(self.credentials.api_key and self.credentials.shared_secret)

    @property
    def mtls_enabled(self) -> bool:
        return bool(self.mtls.cert_path or self.mtls.key_path)

    def ssl_context(self) -> ssl.SSLContext | bool:
        """Return the TLS verification setting for ``httpx``.

        With a client certificate configured this is an ``SSLContext``
        holding the certificate chain; otherwise the plain ``verify`` flag.
        """
        if self._ssl_context is not None:
            return self._ssl_context
        if not self.mtls_enabled:
            self._ssl_context = self.mtls.verify
            return self._ssl_context
        if not (self.mtls.cert_path and self.mtls.key_path):
            raise TransportAuthFailure("Mutual TLS needs both cert_path and key_path")

        try:
            read_pem(self.mtls.cert_path)
            read_pem(self.mtls.key_path)
        except KeyNotFound as e:
            raise TransportAuthFailure(f"Client certificate unavailable: {e}") from e

        context = ssl.create_default_context()
        if not self.mtls.verify:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        try:
            context.load_cert_chain(self.mtls.cert_path, self.mtls.key_path)
        except (ssl.SSLError, OSError) as e:
            raise TransportAuthFailure(f"Failed to load client certificate: {e}") from e
        logger.info(f"Mutual TLS configured with certificate {self.mtls.cert_path}")
        self._ssl_context = context
        return context

    def basic_authorization(self) -> Optional[str]:
        username = self.credentials.basic_auth_username
        password = self.credentials.basic_auth_password
        if not (username and password):
            return None
        raw = f"{username}:{password}".encode("utf-8")
        return f"Basic {base64.b64encode(raw).decode('ascii')}"

    def headers(
        self,
        resource_path: str,
        query_string: str = "",
        body: str = "",
        key_id: Optional[str] = None,
    ) -> Dict[str, str]:
        """Return the authentication headers for one request."""
        headers: Dict[str, str] = {}
        authorization = self.basic_authorization()
        if authorization:
            headers["Authorization"] = authorization
        if self.hmac_enabled:
            headers["apikey"] = self.credentials.api_key
            if key_id:
                headers["keyId"] = key_id
            headers["x-pay-token"] = pay_token(
                self.credentials.shared_secret,
                resource_path,
                query_string,
                body,
                timestamp=int(self._clock()),
            )
        return headers
