"""End-to-end flow tests with an in-memory widget and a mocked network."""

import asyncio
import json
from urllib.parse import unquote

import httpx
import jwt
import pytest

from passkeyflow import FlowIntent, FlowOrchestrator, FlowState, PARClient
from passkeyflow.authorization import AnchorAuthentication, TrustAnchor, TrustChain
from passkeyflow.contracts import CommandType
from passkeyflow.errors import FailureCode, FlowStateError, TransportAuthFailure
from passkeyflow.security import verify_assertion
from passkeyflow.stepup import StepUpOutcome, StepUpStatus
from passkeyflow.transports import InMemoryWindowChannel, WindowTarget


WIDGET_ORIGIN = "https://sandbox.auth.visa.com"
AUTH_ENDPOINT = "/oauth2/authorization/request/hub/payment-credential-authentication"
NO_PASSKEY = {"error": "notfound_amr_values", "error_description": "No passkey registered"}
EVIDENCE = TrustChain(
    anchor=TrustAnchor(
        authentication=[
            AnchorAuthentication(source_id="acs-txn-9", time="2024-05-01T12:00:00+00:00")
        ]
    )
)


class RecordingChallenger:
    def __init__(self, outcome):
        self.outcome = outcome
        self.calls = []

    async def challenge(self, credential_ref, amount, currency):
        self.calls.append((credential_ref, amount, currency))
        return self.outcome


class Network:
    """Replays canned PAR responses and records the requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.responses.pop(0)
        return httpx.Response(status, json=body)

    def body(self, index):
        return json.loads(self.requests[index].content)


def _intent():
    return FlowIntent(
        credential_ref="4111111111111111",
        merchant_name="Example Shop",
        amount="25.00",
        currency="USD",
        notify_email="payer@example.com",
    )


def _init_result(ref, token="ST123", hint="DC2"):
    return {
        "type": "RESULT",
        "ref": ref,
        "ts": 1700000000000,
        "result": {
            "command_type": "INITIALIZATION",
            "status": "SUCCESS",
            "data": {
                "tokens": [{"token_type_hint": "urn:ext:oauth:token-type-hint:server_state", "token": token}],
                "x_via_hint": hint,
            },
        },
    }


DEVICE_EVENT = {
    "type": "EVENT",
    "event": {"type": "DEVICE_DATA_CAPTURED", "data": {"uebas": [{"ueba_source": "VDI", "ueba_ref": "DFP1"}]}},
}


async def _orchestrate(config, network, challenger=None):
    http = httpx.AsyncClient(transport=httpx.MockTransport(network))
    channel = InMemoryWindowChannel()
    orchestrator = FlowOrchestrator(
        config,
        PARClient.from_config(config, client=http),
        step_up=challenger,
        channel=channel,
    )
    return http, channel, orchestrator


async def _handshake(orchestrator):
    initialization = await orchestrator.initialize_flow(_intent())
    await orchestrator.receive(WIDGET_ORIGIN, json.dumps(_init_result(initialization.correlation_id)))
    await orchestrator.receive(WIDGET_ORIGIN, DEVICE_EVENT)
    await orchestrator.process_pending()
    return initialization


@pytest.mark.asyncio
async def test_initialize_flow_posts_initialization_command(config):
    http, channel, orchestrator = await _orchestrate(config, Network())
    async with http:
        initialization = await orchestrator.initialize_flow(_intent())

    assert orchestrator.session.state is FlowState.INITIALIZING
    prefix = "https://sandbox.auth.visa.com/oauth2/authorization/request/hub#msg="
    assert initialization.initialization_url.startswith(prefix)
    command = json.loads(unquote(initialization.initialization_url[len(prefix):]))
    assert command["ref"] == initialization.correlation_id
    assert command["command"]["type"] == "INITIALIZATION"

    data = command["command"]["data"]
    assert data["response_mode"] == "com_visa_web_message"
    assert data["response_type"] == "urn:ext:oauth:response-type:server_state"
    assert data["redirect_uri"] == "https://shop.example"
    assert data["session_context"]["apn"] == "cardinal-web"
    software = data["session_context"]["client_software"]
    assert software["top_origin"] == "https://shop.example"
    assert software["uebas"] == [{"source": "VDI", "ref": "DFP_SESSION_ID"}]
    assert software["tenancy"] == {"product_code": "CRD"}

    posted = channel.last(WindowTarget.IFRAME)
    assert posted.ref == initialization.correlation_id
    assert channel.opened == [(WindowTarget.IFRAME, initialization.initialization_url)]


@pytest.mark.asyncio
async def test_handshake_reaches_par_with_server_state_and_device_profile(config):
    network = Network((200, {"request": "req-jwt", "authorization_endpoint": AUTH_ENDPOINT, "expires_in": 480}))
    http, channel, orchestrator = await _orchestrate(config, network)
    async with http:
        await _handshake(orchestrator)

    session = orchestrator.session
    assert session.server_state_token == "ST123"
    assert session.dfp_session_id == "DFP1"
    assert session.history.count(FlowState.READY_FOR_PAR) == 1
    assert session.state is FlowState.AUTHORIZATION_HANDOFF

    assert len(network.requests) == 1
    assert network.requests[0].headers["X-VIA-HINT"] == "DC2"
    probe = network.body(0)
    assert probe["server_state"] == "ST123"
    assert probe["prompt"] == "login"
    assert probe["code_challenge"] == ""
    assert probe["authorization_details"][0]["type"] == "com_visa_payment_transaction"
    assert probe["authorization_details"][0]["payee"]["origin"] == "shop.example"

    popup = channel.last(WindowTarget.POPUP)
    assert popup.command.type is CommandType.AUTHORIZATION_REQUEST
    assert popup.command.data == {"request": "req-jwt", "authorization_endpoint": AUTH_ENDPOINT}
    assert session.authorization_ref == popup.ref
    assert session.authorization_url.startswith(f"https://sandbox.auth.visa.com{AUTH_ENDPOINT}#msg=")


@pytest.mark.asyncio
async def test_step_up_retry_carries_evidence_and_hands_off(config, signing_key):
    network = Network((400, NO_PASSKEY), (400, NO_PASSKEY))
    challenger = RecordingChallenger(StepUpOutcome(status=StepUpStatus.SUCCESS, trust_chain=EVIDENCE))
    http, channel, orchestrator = await _orchestrate(config, network, challenger)
    async with http:
        await _handshake(orchestrator)

    session = orchestrator.session
    assert session.state is FlowState.AUTHORIZATION_HANDOFF
    assert challenger.calls == [("4111111111111111", "25.00", "USD")]

    retry = network.body(1)
    assert retry["prompt"] == "create"
    assert retry["code_challenge"] == session.code_challenge
    assert retry["authorization_details"][0]["type"] == "com_visa_payment_credential_binding"
    assert retry["authorization_details"][0]["trustchain"]["anchor"] == EVIDENCE.anchor.model_dump(
        mode="json", exclude_none=True
    )

    popup = channel.last(WindowTarget.POPUP)
    assert popup.command.data["authorization_endpoint"] == config.network.binding_endpoint
    request_object = popup.command.data["request"]
    assert jwt.get_unverified_header(request_object)["typ"] == "oauth-authz-req+jwt"
    claims = verify_assertion(request_object, signing_key.public_key())
    assert claims["server_state"] == "ST123"
    assert claims["authorization_details"] == retry["authorization_details"]


@pytest.mark.asyncio
async def test_step_up_retry_success_uses_network_request(config):
    network = Network(
        (400, NO_PASSKEY),
        (200, {"request": "binding-jwt", "authorization_endpoint": "/binding", "expires_in": 480}),
    )
    challenger = RecordingChallenger(StepUpOutcome(status=StepUpStatus.SUCCESS, trust_chain=EVIDENCE))
    http, channel, orchestrator = await _orchestrate(config, network, challenger)
    async with http:
        await _handshake(orchestrator)

    assert orchestrator.session.state is FlowState.AUTHORIZATION_HANDOFF
    assert channel.last(WindowTarget.POPUP).command.data["request"] == "binding-jwt"


@pytest.mark.asyncio
async def test_declined_step_up_fails_flow(config):
    network = Network((400, NO_PASSKEY))
    challenger = RecordingChallenger(StepUpOutcome(status=StepUpStatus.FAILURE, description="declined"))
    http, _, orchestrator = await _orchestrate(config, network, challenger)
    async with http:
        await _handshake(orchestrator)

    assert orchestrator.session.failure.code is FailureCode.STEP_UP_FAILED
    assert len(network.requests) == 1


class UnreachableChallenger:
    async def challenge(self, credential_ref, amount, currency):
        raise httpx.ConnectError("acs unreachable")


class FailingPARClient(PARClient):
    def __init__(self, config, error):
        template = PARClient.from_config(config)
        super().__init__(config, template.signer)
        self.error = error

    async def submit(self, request, routing_hint=None):
        raise self.error


class BrokenPopupChannel(InMemoryWindowChannel):
    async def post(self, target, message, url=None):
        if target is WindowTarget.POPUP:
            raise RuntimeError("popup blocked")
        await super().post(target, message, url)


@pytest.mark.asyncio
async def test_raising_step_up_challenger_fails_flow(config):
    network = Network((400, NO_PASSKEY))
    http, _, orchestrator = await _orchestrate(config, network, UnreachableChallenger())
    async with http:
        await _handshake(orchestrator)

    session = orchestrator.session
    assert session.state is FlowState.FAILED
    assert session.failure.code is FailureCode.STEP_UP_FAILED
    assert "acs unreachable" in session.failure.description
    assert len(network.requests) == 1


@pytest.mark.asyncio
async def test_transport_auth_failure_is_surfaced(config):
    orchestrator = FlowOrchestrator(
        config, FailingPARClient(config, TransportAuthFailure("client certificate unavailable"))
    )
    await _handshake(orchestrator)

    session = orchestrator.session
    assert session.state is FlowState.FAILED
    assert session.failure.code is FailureCode.TRANSPORT_AUTH_FAILURE
    assert session.failure.description == "client certificate unavailable"


@pytest.mark.asyncio
async def test_unexpected_par_client_error_fails_flow(config):
    orchestrator = FlowOrchestrator(config, FailingPARClient(config, RuntimeError("socket closed")))
    await _handshake(orchestrator)

    session = orchestrator.session
    assert session.state is FlowState.FAILED
    assert session.failure.code is FailureCode.UNEXPECTED
    assert session.failure.description == "socket closed"


@pytest.mark.asyncio
async def test_channel_error_during_handoff_fails_flow(config):
    network = Network((200, {"request": "req-jwt", "authorization_endpoint": AUTH_ENDPOINT}))
    http = httpx.AsyncClient(transport=httpx.MockTransport(network))
    orchestrator = FlowOrchestrator(
        config, PARClient.from_config(config, client=http), channel=BrokenPopupChannel()
    )
    async with http:
        await _handshake(orchestrator)

    session = orchestrator.session
    assert session.state is FlowState.FAILED
    assert session.failure.code is FailureCode.UNEXPECTED
    assert session.failure.description == "popup blocked"


@pytest.mark.asyncio
async def test_authorization_result_completes_flow(config):
    network = Network((200, {"request": "req-jwt", "authorization_endpoint": AUTH_ENDPOINT}))
    http, _, orchestrator = await _orchestrate(config, network)
    async with http:
        await _handshake(orchestrator)
        ref = orchestrator.session.authorization_ref

        stray = {"type": "RESULT", "ref": "other", "result": {"command_type": "AUTHORIZATION_REQUEST", "status": "SUCCESS", "data": {}}}
        await orchestrator.receive(WIDGET_ORIGIN, stray)
        await orchestrator.process_pending()
        assert orchestrator.session.state is FlowState.AUTHORIZATION_HANDOFF

        done = {"type": "RESULT", "ref": ref, "result": {"command_type": "AUTHORIZATION_REQUEST", "status": "SUCCESS", "data": {"code": "abc"}}}
        await orchestrator.receive(WIDGET_ORIGIN, done)
        session = await orchestrator.process_pending()

    assert session.state is FlowState.COMPLETED
    assert session.result == {"code": "abc"}


@pytest.mark.asyncio
async def test_closed_popup_abandons_flow(config):
    network = Network((200, {"request": "req-jwt", "authorization_endpoint": AUTH_ENDPOINT}))
    http, _, orchestrator = await _orchestrate(config, network)
    async with http:
        await _handshake(orchestrator)
        await orchestrator.receive(WIDGET_ORIGIN, {"type": "EVENT", "event": {"type": "POPUP_WINDOW_TERMINATED"}})
        session = await orchestrator.process_pending()

    assert session.failure.code is FailureCode.USER_ABANDONED


@pytest.mark.asyncio
async def test_untrusted_origin_does_not_advance_flow(config):
    http, _, orchestrator = await _orchestrate(config, Network())
    async with http:
        initialization = await orchestrator.initialize_flow(_intent())
        accepted = await orchestrator.receive("https://evil.example", _init_result(initialization.correlation_id))
        session = await orchestrator.process_pending()

    assert accepted is None
    assert session.state is FlowState.INITIALIZING
    assert session.server_state_token is None


@pytest.mark.asyncio
async def test_run_times_out_waiting_for_widget(config):
    config.timeouts.initializing = 0.05
    http, _, orchestrator = await _orchestrate(config, Network())
    async with http:
        await orchestrator.initialize_flow(_intent())
        session = await asyncio.wait_for(orchestrator.run(), timeout=5)

    assert session.failure.code is FailureCode.TIMEOUT


@pytest.mark.asyncio
async def test_run_consumes_inbox_until_completion(config):
    network = Network((200, {"request": "req-jwt", "authorization_endpoint": AUTH_ENDPOINT}))
    http, _, orchestrator = await _orchestrate(config, network)
    async with http:
        initialization = await orchestrator.initialize_flow(_intent())
        runner = asyncio.create_task(orchestrator.run())
        await orchestrator.receive(WIDGET_ORIGIN, DEVICE_EVENT)
        await orchestrator.receive(WIDGET_ORIGIN, _init_result(initialization.correlation_id))
        for _ in range(500):
            if orchestrator.session.authorization_ref is not None:
                break
            await asyncio.sleep(0.01)
        done = {
            "type": "RESULT",
            "ref": orchestrator.session.authorization_ref,
            "result": {"command_type": "AUTHORIZATION_REQUEST", "status": "FAILURE", "data": {"error_description": "denied"}},
        }
        await orchestrator.receive(WIDGET_ORIGIN, done)
        session = await asyncio.wait_for(runner, timeout=5)

    assert session.failure.code is FailureCode.AUTHORIZATION_FAILED
    assert session.failure.description == "denied"


@pytest.mark.asyncio
async def test_run_requires_initialized_flow(config):
    http, _, orchestrator = await _orchestrate(config, Network())
    async with http:
        with pytest.raises(FlowStateError):
            await orchestrator.run()


@pytest.mark.asyncio
async def test_second_flow_cannot_start_while_active(config):
    http, _, orchestrator = await _orchestrate(config, Network())
    async with http:
        await orchestrator.initialize_flow(_intent())
        with pytest.raises(FlowStateError):
            await orchestrator.initialize_flow(_intent())


@pytest.mark.asyncio
async def test_new_flow_can_start_after_previous_finished(config):
    http, _, orchestrator = await _orchestrate(config, Network())
    async with http:
        first = await orchestrator.initialize_flow(_intent())
        await orchestrator.receive(WIDGET_ORIGIN, {"type": "EVENT", "event": {"type": "POPUP_WINDOW_TERMINATED"}})
        await orchestrator.process_pending()
        second = await orchestrator.initialize_flow(_intent())

    assert second.correlation_id != first.correlation_id
    assert orchestrator.session.state is FlowState.INITIALIZING
    assert orchestrator.session.failure is None
