"""Tests for origin checks and message dispatch."""

import pytest

from passkeyflow.contracts import CommandMessage, CommandType, ResultMessage
from passkeyflow.protocol import WindowMessageProtocol, normalize_origin
from passkeyflow.transports import InMemoryWindowChannel, WindowTarget

ALLOWED = ["https://sandbox.auth.visa.com", "https://auth.visa.com"]
RESULT = {
    "type": "RESULT",
    "ref": "corr-1",
    "result": {"command_type": "INITIALIZATION", "status": "SUCCESS", "data": {}},
}


def _protocol():
    received = []
    protocol = WindowMessageProtocol(InMemoryWindowChannel(), ALLOWED)

    async def handler(message):
        received.append(message)

    protocol.on_message(handler)
    return protocol, received


def test_normalize_origin():
    assert normalize_origin("HTTPS://Auth.Visa.com/") == "https://auth.visa.com"
    assert normalize_origin("https://auth.visa.com:8443/path") == "https://auth.visa.com:8443"
    assert normalize_origin("auth.visa.com") == ""


@pytest.mark.asyncio
async def test_allowed_origin_is_dispatched():
    protocol, received = _protocol()

    message = await protocol.receive("https://Sandbox.Auth.Visa.com/", RESULT)

    assert isinstance(message, ResultMessage)
    assert received == [message]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "origin",
    [
        "https://evil.example",
        "https://auth.visa.com.evil.example",
        "http://auth.visa.com",
        "https://sandbox.auth.visa.com:444",
        "null",
    ],
)
async def test_untrusted_origin_is_ignored(origin):
    protocol, received = _protocol()

    assert await protocol.receive(origin, RESULT) is None
    assert received == []


@pytest.mark.asyncio
async def test_malformed_unknown_and_inbound_commands_are_ignored():
    protocol, received = _protocol()
    command = CommandMessage.create(CommandType.INITIALIZATION, {})

    assert await protocol.receive(ALLOWED[0], "{broken") is None
    assert await protocol.receive(ALLOWED[0], {"type": "PING"}) is None
    assert await protocol.receive(ALLOWED[0], command.to_json()) is None
    assert received == []


@pytest.mark.asyncio
async def test_send_posts_to_target_window():
    channel = InMemoryWindowChannel()
    protocol = WindowMessageProtocol(channel, ALLOWED)
    command = CommandMessage.create(CommandType.AUTHORIZATION_REQUEST, {"request": "jwt"})

    await protocol.send(WindowTarget.POPUP, command, "https://auth.visa.com/x#msg=1")

    assert channel.last(WindowTarget.POPUP) is command
    assert channel.posted(WindowTarget.IFRAME) == []
    assert channel.opened == [(WindowTarget.POPUP, "https://auth.visa.com/x#msg=1")]
