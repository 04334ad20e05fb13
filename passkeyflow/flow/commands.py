"""Builders for the COMMAND messages posted to the network widget."""

from __future__ import annotations

import uuid
from typing import Any, Dict
from urllib.parse import quote

from ..config import PasskeyFlowConfig
from ..constants import (
    DEVICE_PROFILING_PLACEHOLDER_REF,
    DEVICE_PROFILING_SOURCE,
    FALLBACK_REQUEST_TTL_SECONDS,
    REQUEST_OBJECT_TYP,
    RESPONSE_MODE_WEB_MESSAGE,
    RESPONSE_TYPE_SERVER_STATE,
)
from ..contracts import CommandMessage, CommandType
from ..par.models import PARRequest, PARSuccess
from ..security.jws import AssertionSigner


def hub_url(base_url: str, path: str, message: CommandMessage) -> str:
    """Return ``{base}{path}#msg=<url-encoded command>``."""
    fragment = quote(message.to_json(), safe="")
    return f"{base_url.rstrip('/')}{path}#msg={fragment}"


def initialization_data(
    config: PasskeyFlowConfig, merchant_origin: str, integrator_origin: str
) -> Dict[str, Any]:
    merchant = config.merchant
    return {
        "response_mode": RESPONSE_MODE_WEB_MESSAGE,
        "redirect_uri": integrator_origin,
        "session_context": {
            "apn": merchant.apn.lower(),
            "client_software": {
                "top_origin": merchant_origin,
                "integrator_origin": integrator_origin,
                "uebas": [
                    {
                        "source": DEVICE_PROFILING_SOURCE,
                        "ref": DEVICE_PROFILING_PLACEHOLDER_REF,
                    }
                ],
                "id": merchant.client_id,
                "version": merchant.client_version,
                "oauth2_version": "1.0",
                "tenancy": {"product_code": merchant.product_code},
            },
        },
        "response_type": RESPONSE_TYPE_SERVER_STATE,
    }


def build_initialization_command(
    config: PasskeyFlowConfig,
    correlation_id: str,
    merchant_origin: str,
    integrator_origin: str,
) -> CommandMessage:
    """INITIALIZATION command whose ``ref`` is the flow's correlation id."""
    return CommandMessage.create(
        CommandType.INITIALIZATION,
        initialization_data(config, merchant_origin, integrator_origin),
        ref=correlation_id,
    )


def build_authorization_command(request: str, authorization_endpoint: str) -> CommandMessage:
    return CommandMessage.create(
        CommandType.AUTHORIZATION_REQUEST,
        {"request": request, "authorization_endpoint": authorization_endpoint},
    )


def fallback_authorization(
    config: PasskeyFlowConfig, signer: AssertionSigner, par_request: PARRequest
) -> PARSuccess:
    """Merchant-signed request object used when the post-step-up PAR is refused.

    The object carries the same authorization details as the refused
    request and targets the configured credential-binding endpoint.
    """
    payload = par_request.to_payload()
    for field in ("client_assertion", "client_assertion_type"):
        payload.pop(field, None)
    claims = {
        **payload,
        "client_id": config.merchant.client_id,
        "max_age": 0,
        "nonce": str(uuid.uuid4()),
    }
    request_object = signer.request_object(
        claims, typ=REQUEST_OBJECT_TYP, ttl_seconds=FALLBACK_REQUEST_TTL_SECONDS
    )
    return PARSuccess(
        request=request_object,
        authorization_endpoint=config.network.binding_endpoint,
        expires_in=FALLBACK_REQUEST_TTL_SECONDS,
    )


def describe(message: CommandMessage) -> str:
    """Pretty JSON rendering used by the CLI dry run."""
    return message.model_dump_json(indent=2)
