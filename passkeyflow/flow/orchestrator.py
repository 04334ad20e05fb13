"""Actor driving one passkey authorization flow.

The orchestrator owns the current :class:`FlowSession`, feeds inbound
window messages and effect outcomes through :func:`transition`, and
executes the effects it returns. Every input is handled to completion,
including the chain of effects it triggers, before the next one is taken
from the inbox.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import deque
from typing import Any, Callable, Deque, Optional

from pydantic import BaseModel

from ..authorization.builder import (
    build_authentication_detail,
    build_registration_detail,
    payee_for,
)
from ..config import PasskeyFlowConfig
from ..constants import HUB_PATH
from ..contracts import CommandMessage, InboundMessage
from ..errors import FailureCode, FlowStateError, PasskeyFlowError, TransportAuthFailure
from ..par.client import PARClient
from ..par.models import PARFailure, PARRequest, PARResult, generate_pkce_pair
from ..protocol import WindowMessageProtocol
from ..security.jws import AssertionSigner
from ..stepup import SimulatedStepUpChallenger, StepUpChallenger, StepUpOutcome, StepUpStatus
from ..transports import BaseWindowChannel, InMemoryWindowChannel, WindowTarget
from .commands import (
    build_authorization_command,
    build_initialization_command,
    fallback_authorization,
    hub_url,
)
from .machine import (
    AuthorizationLaunched,
    Effect,
    FlowInput,
    InitializeRequested,
    LaunchAuthorization,
    ParAttempt,
    ParCompleted,
    PostInitialization,
    RunStepUp,
    StateTimeout,
    StepUpCompleted,
    SubmitPar,
    transition,
)
from .session import FlowIntent, FlowSession, FlowState, FlowType

logger = logging.getLogger(__name__)


class FlowInitialization(BaseModel):
    correlation_id: str
    initialization_url: str


class FlowOrchestrator:
    """Runs the initialization handshake, PAR submission, step-up and hand-off."""

    def __init__(
        self,
        config: PasskeyFlowConfig,
        par_client: PARClient,
        step_up: Optional[StepUpChallenger] = None,
        channel: Optional[BaseWindowChannel] = None,
        signer: Optional[AssertionSigner] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.par_client = par_client
        self.step_up = step_up or SimulatedStepUpChallenger(
            source_hint=config.merchant.product_code
        )
        self.channel = channel or InMemoryWindowChannel()
        self.signer = signer or par_client.signer
        self.protocol = WindowMessageProtocol(self.channel, config.network.allowed_origins)
        self.protocol.on_message(self._enqueue)
        self._clock = clock
        self._session = FlowSession()
        self._state_entered_at = clock()
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._last_request: Optional[PARRequest] = None
        self._initialization_url = ""

    @property
    def session(self) -> FlowSession:
        return self._session

    async def initialize_flow(
        self,
        intent: FlowIntent,
        merchant_origin: Optional[str] = None,
        integrator_origin: Optional[str] = None,
        flow_type: FlowType = FlowType.REGISTRATION,
    ) -> FlowInitialization:
        """Start a new flow and post the INITIALIZATION command to the iframe.

        Args:
            intent: Credential, payee and amount the payer asked for.
            merchant_origin: Top-level page origin. Defaults to the configured one.
            integrator_origin: Origin hosting the widget, also the redirect URI.
            flow_type: Whether the caller requested registration or payment.

        Raises:
            FlowStateError: If a flow is already in progress.
        """
        if self._session.state.is_active:
            raise FlowStateError(
                f"Flow {self._session.correlation_id} is still {self._session.state.value}"
            )
        if self._session.state.is_terminal:
            self._set_session(FlowSession())
            self._last_request = None

        code_verifier, code_challenge = generate_pkce_pair()
        await self.dispatch(
            InitializeRequested(
                correlation_id=str(uuid.uuid4()),
                flow_type=flow_type,
                intent=intent,
                merchant_origin=merchant_origin or self.config.merchant.origin,
                integrator_origin=integrator_origin or self.config.merchant.integrator_origin,
                code_verifier=code_verifier,
                code_challenge=code_challenge,
                oauth_state=str(uuid.uuid4()),
            )
        )
        return FlowInitialization(
            correlation_id=self._session.correlation_id,
            initialization_url=self._initialization_url,
        )

    async def receive(self, origin: str, data: Any) -> Optional[InboundMessage]:
        """Accept one ``postMessage`` delivery; accepted messages join the inbox."""
        return await self.protocol.receive(origin, data)

    async def _enqueue(self, message: InboundMessage) -> None:
        await self._inbox.put(message)

    async def process_pending(self) -> FlowSession:
        """Handle every queued input without waiting for new ones."""
        while not self._inbox.empty():
            await self.dispatch(self._inbox.get_nowait())
        return self._session

    async def run(self) -> FlowSession:
        """Consume the inbox until the flow finishes.

        Waiting states time out after the configured number of seconds
        measured from when the state was entered.
        """
        if self._session.state is FlowState.IDLE:
            raise FlowStateError("initialize_flow must be called before run")
        while not self._session.state.is_terminal:
            state = self._session.state
            remaining = self._remaining(state)
            if remaining is not None and remaining <= 0:
                await self.dispatch(StateTimeout(state=state))
                continue
            try:
                item = await asyncio.wait_for(self._inbox.get(), remaining)
            except asyncio.TimeoutError:
                item = StateTimeout(state=state)
            await self.dispatch(item)
        return self._session

    def _timeout_for(self, state: FlowState) -> Optional[float]:
        timeouts = self.config.timeouts
        return {
            FlowState.INITIALIZING: timeouts.initializing,
            FlowState.AWAITING_DEVICE_PROFILE: timeouts.device_profile,
            FlowState.AUTHORIZATION_HANDOFF: timeouts.authorization_handoff,
        }.get(state)

    def _remaining(self, state: FlowState) -> Optional[float]:
        timeout = self._timeout_for(state)
        if timeout is None:
            return None
        return self._state_entered_at + timeout - self._clock()

    async def dispatch(self, item: FlowInput) -> FlowSession:
        """Apply ``item`` and every follow-up input its effects produce."""
        pending: Deque[FlowInput] = deque([item])
        while pending:
            result = transition(self._session, pending.popleft())
            self._set_session(result.session)
            for effect in result.effects:
                try:
                    follow_up = await self._execute(effect)
                except Exception as e:
                    logger.exception(
                        f"Flow {self._session.correlation_id}: {type(effect).__name__} raised"
                    )
                    self._set_session(
                        self._session.fail(FailureCode.UNEXPECTED, str(e) or type(e).__name__)
                    )
                    break
                if follow_up is not None:
                    pending.append(follow_up)
        return self._session

    def _set_session(self, session: FlowSession) -> None:
        previous = self._session
        self._session = session
        if session.history == previous.history:
            return
        self._state_entered_at = self._clock()
        prefix = len(previous.history)
        if session.history[:prefix] == previous.history:
            entered = session.history[prefix:]
        else:
            entered = (session.state,)
        source = previous.state
        for state in entered:
            logger.info(f"Flow {session.correlation_id}: {source.value} -> {state.value}")
            source = state
        if session.state is FlowState.FAILED and session.failure is not None:
            logger.error(
                f"Flow {session.correlation_id} failed: "
                f"{session.failure.code.value} {session.failure.description}"
            )

    def _initialization_command(self) -> CommandMessage:
        session = self._session
        return build_initialization_command(
            self.config,
            session.correlation_id,
            session.merchant_origin,
            session.integrator_origin,
        )

    async def _execute(self, effect: Effect) -> Optional[FlowInput]:
        if isinstance(effect, PostInitialization):
            command = self._initialization_command()
            url = hub_url(self.config.network.hub_base_url, HUB_PATH, command)
            self._initialization_url = url
            await self.protocol.send(WindowTarget.IFRAME, command, url)
            return None

        if isinstance(effect, SubmitPar):
            result = await self.submit_authorization_request(self._session, effect.attempt)
            return ParCompleted(attempt=effect.attempt, result=result)

        if isinstance(effect, RunStepUp):
            return StepUpCompleted(outcome=await self._run_step_up())

        if isinstance(effect, LaunchAuthorization):
            par = effect.par
            if par is None:
                logger.warning(
                    f"Flow {self._session.correlation_id}: retry still reports no passkey, "
                    "handing off with a merchant-signed request object"
                )
                par = fallback_authorization(self.config, self.signer, self._last_request)
            command = build_authorization_command(par.request, par.authorization_endpoint)
            url = hub_url(self.config.network.hub_base_url, par.authorization_endpoint, command)
            await self.protocol.send(WindowTarget.POPUP, command, url)
            return AuthorizationLaunched(ref=command.ref, url=url)

        raise TypeError(f"Unsupported effect {type(effect).__name__}")

    async def _run_step_up(self) -> StepUpOutcome:
        intent = self._session.intent
        logger.info(
            f"Flow {self._session.correlation_id}: step-up challenge for {intent.masked_credential}"
        )
        try:
            return await self.step_up.challenge(intent.credential_ref, intent.amount, intent.currency)
        except PasskeyFlowError as e:
            return StepUpOutcome(status=StepUpStatus.FAILURE, description=str(e))
        except Exception as e:
            logger.exception(f"Flow {self._session.correlation_id}: step-up challenger raised")
            return StepUpOutcome(
                status=StepUpStatus.FAILURE,
                description=f"Step-up challenge unavailable: {str(e) or type(e).__name__}",
            )

    def build_par_request(
        self, session: FlowSession, attempt: ParAttempt = ParAttempt.PROBE
    ) -> PARRequest:
        """Build the probe (payment transaction) or retry (credential binding) PAR."""
        intent = session.intent
        if intent is None:
            raise FlowStateError("Flow has no intent to authorize")
        payee = payee_for(session.merchant_origin, intent.merchant_name)
        if attempt is ParAttempt.PROBE:
            detail = build_authentication_detail(
                intent.credential_ref, payee, intent.amount, intent.currency
            )
        else:
            detail = build_registration_detail(
                intent.credential_ref,
                payee,
                intent.notify_email,
                trust_chain=session.trust_chain,
                merchant_transaction_id=intent.merchant_transaction_id,
                source_hint=self.config.merchant.product_code,
            )
        return PARRequest.for_detail(
            detail,
            server_state=session.server_state_token,
            redirect_uri=session.integrator_origin,
            code_challenge=session.code_challenge or "",
            state=session.oauth_state,
        )

    async def submit_authorization_request(
        self, session: FlowSession, attempt: ParAttempt = ParAttempt.PROBE
    ) -> PARResult:
        """Build, protect and submit the PAR for ``session``.

        Faults raised while building, protecting or sending the request are
        reported as a failed result rather than raised.
        """
        try:
            request = self.build_par_request(session, attempt)
            self._last_request = request
            logger.info(
                f"Flow {session.correlation_id}: {attempt.value} PAR for "
                f"{session.intent.masked_credential}"
            )
            return await self.par_client.submit(request, routing_hint=session.data_center_hint)
        except TransportAuthFailure as e:
            logger.error(f"Flow {session.correlation_id}: transport authentication failed: {e}")
            return PARFailure(code=FailureCode.TRANSPORT_AUTH_FAILURE, description=str(e))
        except PasskeyFlowError as e:
            logger.error(f"Flow {session.correlation_id}: unable to protect PAR: {e}")
            return PARFailure(code=FailureCode.UNEXPECTED, description=str(e))
        except Exception as e:
            logger.exception(f"Flow {session.correlation_id}: {attempt.value} PAR raised")
            return PARFailure(code=FailureCode.UNEXPECTED, description=str(e) or type(e).__name__)
