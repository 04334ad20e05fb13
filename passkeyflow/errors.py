"""Failure codes and exception hierarchy for passkeyflow."""

from __future__ import annotations

from enum import Enum


class FailureCode(str, Enum):
    """Structured reason attached to every failed PAR or flow."""

    NO_PASSKEY_FOUND = "NoPasskeyFound"
    UNEXPECTED = "Unexpected"
    INITIALIZATION_INCOMPLETE = "InitializationIncomplete"
    INITIALIZATION_FAILED = "InitializationFailed"
    DEVICE_PROFILING_FAILED = "DeviceProfilingFailed"
    USER_ABANDONED = "UserAbandoned"
    STEP_UP_FAILED = "StepUpFailed"
    AUTHORIZATION_FAILED = "AuthorizationFailed"
    TRANSPORT_AUTH_FAILURE = "TransportAuthFailure"
    TIMEOUT = "Timeout"


class PasskeyFlowError(Exception):
    """Base class for all passkeyflow errors."""


class KeyMaterialError(PasskeyFlowError):
    """Key material could not be used. Fatal at startup."""


class KeyNotFound(KeyMaterialError):
    """A configured key or certificate file does not exist."""


class KeyFormatInvalid(KeyMaterialError):
    """Key material lacks a recognisable PEM header or cannot be parsed."""


class EnvelopeError(PasskeyFlowError):
    """An encrypted envelope could not be produced or opened."""


class EnvelopeStale(EnvelopeError):
    """An envelope's issued-at timestamp is outside the accepted window."""


class AssertionVerificationError(PasskeyFlowError):
    """A signed assertion failed verification."""


class SignatureInvalid(AssertionVerificationError):
    """The assertion signature does not match its contents."""


class AssertionExpired(AssertionVerificationError):
    """The assertion is past its ``exp`` claim."""


class TransportAuthFailure(PasskeyFlowError):
    """Transport authentication material is missing or unusable."""


class FlowStateError(PasskeyFlowError):
    """An operation was requested in a state that does not allow it."""
