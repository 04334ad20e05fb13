"""Interpretation of the authorization callback returned after hand-off."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field


class CallbackResult(BaseModel):
    success: bool
    authorization_code: Optional[str] = None
    state: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None
    next_step: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def process_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
    expected_state: Optional[str] = None,
) -> CallbackResult:
    """Classify the ``code``/``error`` pair delivered to the redirect URI.

    When ``expected_state`` is given the returned ``state`` must match it.
    """
    if error:
        return CallbackResult(
            success=False, state=state, error=error, error_description=error_description
        )
    if not code:
        return CallbackResult(
            success=False,
            state=state,
            error="missing_authorization_code",
            error_description="Authorization code not provided in callback",
        )
    if expected_state is not None and state != expected_state:
        return CallbackResult(
            success=False,
            state=state,
            error="state_mismatch",
            error_description="Callback state does not match the pending request",
        )
    return CallbackResult(
        success=True, authorization_code=code, state=state, next_step="token_exchange"
    )
