"""Pure transition function of the passkey authorization flow.

``transition(session, input)`` never performs I/O. It returns the next
session together with the effects the orchestrator must execute; effect
outcomes come back as further inputs (``ParCompleted``, ``StepUpCompleted``,
``AuthorizationLaunched``).
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from ..contracts import (
    CommandType,
    DeviceData,
    EventMessage,
    EventType,
    InitializationData,
    ResultMessage,
    ResultStatus,
)
from ..errors import FailureCode
from ..par.models import PARFailure, PARResult, PARSuccess
from ..stepup import StepUpOutcome
from .session import FlowIntent, FlowSession, FlowState, FlowType

logger = logging.getLogger(__name__)


class ParAttempt(str, Enum):
    PROBE = "probe"
    RETRY = "retry"


# Inputs -------------------------------------------------------------------


class _Input(BaseModel):
    model_config = ConfigDict(frozen=True)


class InitializeRequested(_Input):
    correlation_id: str
    flow_type: FlowType
    intent: FlowIntent
    merchant_origin: str
    integrator_origin: str
    code_verifier: str
    code_challenge: str
    oauth_state: str


class ParCompleted(_Input):
    attempt: ParAttempt
    result: PARResult


class StepUpCompleted(_Input):
    outcome: StepUpOutcome


class AuthorizationLaunched(_Input):
    ref: str
    url: str


class StateTimeout(_Input):
    state: FlowState


FlowInput = Union[
    InitializeRequested,
    ResultMessage,
    EventMessage,
    ParCompleted,
    StepUpCompleted,
    AuthorizationLaunched,
    StateTimeout,
]


# Effects ------------------------------------------------------------------


class PostInitialization(_Input):
    """Post the INITIALIZATION command to the widget iframe."""


class SubmitPar(_Input):
    attempt: ParAttempt


class RunStepUp(_Input):
    pass


class LaunchAuthorization(_Input):
    """Open the popup with an AUTHORIZATION_REQUEST.

    ``par`` is ``None`` when the retry after step-up still reported no
    enrolled passkey; the orchestrator then issues its own request object.
    """

    par: Optional[PARSuccess] = None


Effect = Union[PostInitialization, SubmitPar, RunStepUp, LaunchAuthorization]


class Transition(BaseModel):
    model_config = ConfigDict(frozen=True)

    session: FlowSession
    effects: Tuple[Effect, ...] = ()


def _stay(session: FlowSession, reason: str) -> Transition:
    logger.info(f"Flow {session.correlation_id or '-'} in {session.state.value}: {reason}")
    return Transition(session=session)


def _join_ready(session: FlowSession) -> Transition:
    """Advance to PAR submission once both handshake halves have arrived."""
    if not session.ready_for_par:
        state = (
            FlowState.AWAITING_DEVICE_PROFILE
            if session.server_state_token
            else FlowState.INITIALIZING
        )
        if state is not session.state:
            session = session.advance(state)
        return Transition(session=session)
    ready = session.advance(FlowState.READY_FOR_PAR)
    in_flight = ready.advance(FlowState.PAR_IN_FLIGHT, par_attempts=ready.par_attempts + 1)
    return Transition(session=in_flight, effects=(SubmitPar(attempt=ParAttempt.PROBE),))


def _handoff(session: FlowSession, par: Optional[PARSuccess]) -> Transition:
    return Transition(
        session=session.advance(FlowState.AUTHORIZATION_HANDOFF),
        effects=(LaunchAuthorization(par=par),),
    )


def _on_initialization_result(session: FlowSession, message: ResultMessage) -> Transition:
    if session.server_state_token:
        return _stay(session, "duplicate INITIALIZATION result")
    result = message.result
    if result.status is ResultStatus.FAILURE:
        return Transition(
            session=session.fail(
                FailureCode.INITIALIZATION_FAILED,
                result.error_description("Widget initialization failed"),
            )
        )
    if result.status is not ResultStatus.SUCCESS:
        return _stay(session, "INITIALIZATION result with unknown status")

    try:
        data = InitializationData.model_validate(result.data)
    except ValidationError:
        data = InitializationData()
    token = data.server_state_token()
    if not token:
        return Transition(
            session=session.fail(
                FailureCode.INITIALIZATION_INCOMPLETE,
                "Initialization result carried no server_state token",
            )
        )
    session = session.update(server_state_token=token, data_center_hint=data.x_via_hint)
    return _join_ready(session)


def _on_device_data(session: FlowSession, message: EventMessage) -> Transition:
    if session.dfp_session_id:
        return _stay(session, "duplicate DEVICE_DATA_CAPTURED event")
    try:
        data = DeviceData.model_validate(message.event.data)
    except ValidationError:
        data = DeviceData()
    dfp_session_id = data.profiling_session_id()
    if not dfp_session_id:
        return _stay(session, "device capture without a profiling session reference")
    return _join_ready(session.update(dfp_session_id=dfp_session_id))


def _on_result(session: FlowSession, message: ResultMessage) -> Transition:
    command_type = message.result.command_type
    handshake = session.state in (FlowState.INITIALIZING, FlowState.AWAITING_DEVICE_PROFILE)

    if command_type is CommandType.INITIALIZATION and handshake:
        if message.ref != session.correlation_id:
            return _stay(session, f"INITIALIZATION result for unknown ref {message.ref}")
        return _on_initialization_result(session, message)

    if (
        command_type is CommandType.AUTHORIZATION_REQUEST
        and session.state is FlowState.AUTHORIZATION_HANDOFF
    ):
        if not session.authorization_ref or message.ref != session.authorization_ref:
            return _stay(session, f"AUTHORIZATION_REQUEST result for unknown ref {message.ref}")
        status = message.result.status
        if status is ResultStatus.SUCCESS:
            return Transition(
                session=session.advance(FlowState.COMPLETED, result=dict(message.result.data))
            )
        if status is ResultStatus.FAILURE:
            return Transition(
                session=session.fail(
                    FailureCode.AUTHORIZATION_FAILED,
                    message.result.error_description("Authorization failed"),
                )
            )
        return _stay(session, "AUTHORIZATION_REQUEST result with unknown status")

    return _stay(session, f"unexpected {command_type.value} result")


def _on_event(session: FlowSession, message: EventMessage) -> Transition:
    event_type = message.event.type
    if event_type is EventType.POPUP_WINDOW_TERMINATED:
        return Transition(
            session=session.fail(FailureCode.USER_ABANDONED, "Widget window closed by user")
        )

    handshake = session.state in (FlowState.INITIALIZING, FlowState.AWAITING_DEVICE_PROFILE)
    if event_type is EventType.DEVICE_DATA_CAPTURED and handshake:
        return _on_device_data(session, message)
    if event_type is EventType.DEVICE_DATA_CAPTURE_FAILED and handshake:
        data = message.event.data
        description = data.get("error_description") or data.get("error") or "Device profiling failed"
        return Transition(session=session.fail(FailureCode.DEVICE_PROFILING_FAILED, description))
    return _stay(session, f"unexpected {event_type.value} event")


def _on_par_completed(session: FlowSession, message: ParCompleted) -> Transition:
    expected = {
        ParAttempt.PROBE: FlowState.PAR_IN_FLIGHT,
        ParAttempt.RETRY: FlowState.PAR_RETRY_IN_FLIGHT,
    }[message.attempt]
    if session.state is not expected:
        return _stay(session, f"stale {message.attempt.value} PAR result")

    result = message.result
    if isinstance(result, PARSuccess):
        return _handoff(session, result)

    assert isinstance(result, PARFailure)
    if result.code is FailureCode.NO_PASSKEY_FOUND:
        if message.attempt is ParAttempt.PROBE:
            required = session.advance(FlowState.STEP_UP_REQUIRED)
            return Transition(
                session=required.advance(FlowState.STEP_UP_IN_FLIGHT),
                effects=(RunStepUp(),),
            )
        # A retry after successful step-up hands off even without an enrolled passkey.
        return _handoff(session, None)
    return Transition(session=session.fail(result.code, result.description))


def _on_step_up(session: FlowSession, message: StepUpCompleted) -> Transition:
    if session.state is not FlowState.STEP_UP_IN_FLIGHT:
        return _stay(session, "stale step-up outcome")
    outcome = message.outcome
    if not outcome.succeeded:
        return Transition(
            session=session.fail(
                FailureCode.STEP_UP_FAILED, outcome.description or "Step-up challenge failed"
            )
        )
    retry = session.advance(
        FlowState.PAR_RETRY_IN_FLIGHT,
        trust_chain=outcome.trust_chain,
        par_attempts=session.par_attempts + 1,
    )
    return Transition(session=retry, effects=(SubmitPar(attempt=ParAttempt.RETRY),))


def transition(session: FlowSession, message: FlowInput) -> Transition:
    """Compute the next session and effects for ``message``."""
    if session.state.is_terminal:
        return _stay(session, "flow already finished")

    if isinstance(message, InitializeRequested):
        if session.state is not FlowState.IDLE:
            return _stay(session, "initialization already requested")
        started = FlowSession(
            correlation_id=message.correlation_id,
            flow_type=message.flow_type,
            intent=message.intent,
            merchant_origin=message.merchant_origin,
            integrator_origin=message.integrator_origin,
            code_verifier=message.code_verifier,
            code_challenge=message.code_challenge,
            oauth_state=message.oauth_state,
        ).advance(FlowState.INITIALIZING)
        return Transition(session=started, effects=(PostInitialization(),))

    if session.state is FlowState.IDLE:
        return _stay(session, "no active flow")

    if isinstance(message, ResultMessage):
        return _on_result(session, message)
    if isinstance(message, EventMessage):
        return _on_event(session, message)
    if isinstance(message, ParCompleted):
        return _on_par_completed(session, message)
    if isinstance(message, StepUpCompleted):
        return _on_step_up(session, message)
    if isinstance(message, AuthorizationLaunched):
        if session.state is not FlowState.AUTHORIZATION_HANDOFF:
            return _stay(session, "authorization launched outside hand-off")
        return Transition(
            session=session.update(authorization_ref=message.ref, authorization_url=message.url)
        )
    if isinstance(message, StateTimeout):
        if message.state is not session.state or not session.state.awaits_widget:
            return _stay(session, f"stale timeout for {message.state.value}")
        return Transition(
            session=session.fail(
                FailureCode.TIMEOUT, f"No widget response while {session.state.value}"
            )
        )
    return _stay(session, f"unhandled input {type(message).__name__}")
