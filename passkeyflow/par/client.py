"""Client for the network's Pushed Authorization Request endpoint."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from ..config import PasskeyFlowConfig
from ..constants import NO_PASSKEY_ERROR, ROUTING_HINT_HEADER, SERVICE_CONTEXT_HEADER
from ..errors import EnvelopeError, FailureCode, KeyNotFound
from ..security.envelope import decrypt_envelope, encrypt_envelope
from ..security.jws import AssertionSigner
from ..security.keys import load_private_key, load_public_key
from ..security.transport import TransportSecurity
from .models import PARFailure, PARRequest, PARResult, PARSuccess

logger = logging.getLogger(__name__)


def classify_response(status_code: int, body: Any) -> PARResult:
    """Map an HTTP status and decoded body to a :data:`PARResult`.

    ``notfound_amr_values`` is never a hard failure: it reports that no
    passkey is enrolled for the credential and device, which drives the
    step-up fallback.
    """
    if isinstance(body, dict) and body.get("error") == NO_PASSKEY_ERROR:
        return PARFailure(
            code=FailureCode.NO_PASSKEY_FOUND,
            description=body.get("error_description")
            or "No passkey registered for this payment credential and device",
            status_code=status_code,
        )
    if status_code >= 400 or not isinstance(body, dict) or "error" in body:
        description = ""
        if isinstance(body, dict):
            description = body.get("error_description") or body.get("error") or ""
        return PARFailure(
            code=FailureCode.UNEXPECTED,
            description=description or f"PAR request failed with HTTP {status_code}",
            status_code=status_code,
        )
    try:
        return PARSuccess.model_validate(body)
    except ValidationError as e:
        return PARFailure(
            code=FailureCode.UNEXPECTED,
            description=f"Malformed PAR response: {e.error_count()} invalid field(s)",
            status_code=status_code,
        )


class PARClient:
    """Submits protected PARs and classifies the network's reply.

    Key material is loaded when the client is built; a missing or
    malformed key raises there.
    """

    def __init__(
        self,
        config: PasskeyFlowConfig,
        signer: AssertionSigner,
        transport_security: Optional[TransportSecurity] = None,
        encryption_key: Any = None,
        response_key: Any = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config
        self.signer = signer
        self.transport_security = transport_security or TransportSecurity(
            config.credentials, config.mtls
        )
        self.encryption_key = encryption_key
        self.response_key = response_key
        self._client = client

    @classmethod
    def from_config(
        cls, config: PasskeyFlowConfig, client: Optional[httpx.AsyncClient] = None
    ) -> "PARClient":
        """Build a client, loading every configured key up front."""
        if not config.assertion.private_key_path:
            raise KeyNotFound("assertion.private_key_path is not configured")
        signer = AssertionSigner(
            load_private_key(config.assertion.private_key_path),
            client_id=config.merchant.client_id,
            audience=config.assertion.audience,
            key_id=config.assertion.key_id,
            issuer=config.assertion.issuer,
            ttl_seconds=config.assertion.ttl_seconds,
        )
        encryption_key = None
        response_key = None
        if config.encryption.enabled:
            if not config.encryption.certificate_path:
                raise KeyNotFound("encryption.certificate_path is not configured")
            encryption_key = load_public_key(config.encryption.certificate_path)
            if config.encryption.response_private_key_path:
                response_key = load_private_key(config.encryption.response_private_key_path)
        transport_security = TransportSecurity(config.credentials, config.mtls)
        transport_security.ssl_context()
        return cls(
            config,
            signer,
            transport_security=transport_security,
            encryption_key=encryption_key,
            response_key=response_key,
            client=client,
        )

    @property
    def url(self) -> str:
        return f"{self.config.network.api_base_url.rstrip('/')}{self.config.network.par_path}"

    @property
    def encryption_enabled(self) -> bool:
        return self.encryption_key is not None

    def _key_id(self) -> str:
        if self.encryption_enabled and self.config.encryption.key_id:
            return self.config.encryption.key_id
        return self.config.assertion.key_id or self.config.merchant.client_id

    def build_body(self, request: PARRequest) -> tuple[str, str]:
        """Return ``(wire_body, mac_body)`` for ``request``.

        The MAC body is empty when the payload travels inside an envelope.
        """
        payload = request.to_payload()
        if self.encryption_enabled:
            envelope = encrypt_envelope(
                payload, self.encryption_key, self.config.encryption.key_id or ""
            )
            return json.dumps({"encData": envelope}), ""
        body = json.dumps(payload)
        return body, body

    def build_headers(self, mac_body: str, routing_hint: Optional[str] = None) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            SERVICE_CONTEXT_HEADER: self.config.merchant.apn,
        }
        hint = routing_hint or self.config.network.data_center_hint
        if hint:
            headers[ROUTING_HINT_HEADER] = hint
        headers.update(
            self.transport_security.headers(
                self.config.network.par_path, "", mac_body, key_id=self._key_id()
            )
        )
        return headers

    def _decode(self, response: httpx.Response) -> Any:
        try:
            body = response.json()
        except ValueError:
            return None
        if isinstance(body, dict) and "encData" in body and self.response_key is not None:
            try:
                return decrypt_envelope(body["encData"], self.response_key)
            except EnvelopeError as e:
                logger.error(f"Unable to decrypt PAR response: {e}")
                return None
        return body

    async def submit(self, request: PARRequest, routing_hint: Optional[str] = None) -> PARResult:
        """Send ``request`` to the PAR endpoint and classify the reply.

        Args:
            request: PAR to submit. A fresh client assertion is always signed.
            routing_hint: Data-center hint from initialization, forwarded so
                the call lands on the partition that issued ``server_state``.
        """
        if not request.server_state:
            logger.error("PAR rejected locally: server_state missing from initialization")
            return PARFailure(
                code=FailureCode.INITIALIZATION_INCOMPLETE,
                description="server_state is required from initialization",
            )

        signed = request.model_copy(update={"client_assertion": self.signer.client_assertion()})
        wire_body, mac_body = self.build_body(signed)
        headers = self.build_headers(mac_body, routing_hint)
        logger.info(
            f"Submitting PAR prompt={signed.prompt} type={signed.detail.type} "
            f"encrypted={self.encryption_enabled} hint={headers.get(ROUTING_HINT_HEADER)}"
        )

        try:
            if self._client is not None:
                response = await self._client.post(self.url, content=wire_body, headers=headers)
            else:
                async with httpx.AsyncClient(
                    verify=self.transport_security.ssl_context(),
                    timeout=self.config.network.request_timeout,
                ) as client:
                    response = await client.post(self.url, content=wire_body, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"PAR transport error: {e}")
            return PARFailure(code=FailureCode.UNEXPECTED, description=f"PAR transport error: {e}")

        result = classify_response(response.status_code, self._decode(response))
        if isinstance(result, PARSuccess):
            logger.info(f"PAR accepted, endpoint={result.authorization_endpoint}")
        else:
            logger.warning(
                f"PAR failed status={response.status_code} code={result.code.value}: {result.description}"
            )
        return result
