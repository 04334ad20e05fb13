"""Pushed Authorization Request client and payloads."""

from .callback import CallbackResult, process_callback
from .client import PARClient, classify_response
from .diagnostics import ConfigurationReport, validate_configuration
from .models import PARFailure, PARRequest, PARResult, PARSuccess, generate_pkce_pair

__all__ = [
    "CallbackResult",
    "ConfigurationReport",
    "PARClient",
    "PARFailure",
    "PARRequest",
    "PARResult",
    "PARSuccess",
    "classify_response",
    "generate_pkce_pair",
    "process_callback",
    "validate_configuration",
]
