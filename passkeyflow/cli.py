"""Command line interface for passkey authorization flows."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer

from passkeyflow import FlowIntent, FlowOrchestrator, FlowType, PARClient, load_config
from passkeyflow.authorization import (
    build_authentication_detail,
    build_registration_detail,
    payee_for,
)
from passkeyflow.errors import PasskeyFlowError
from passkeyflow.flow.commands import describe
from passkeyflow.par import PARRequest, generate_pkce_pair, process_callback, validate_configuration
from passkeyflow.security import decrypt_envelope, encrypt_envelope, load_private_key, load_public_key
from passkeyflow.transports import InMemoryWindowChannel, WindowTarget

app = typer.Typer(help="CLI for passkey authorization flows")

# Command groups
flow_app = typer.Typer(help="Commands for driving authorization flows")
par_app = typer.Typer(help="Commands for Pushed Authorization Requests")
envelope_app = typer.Typer(help="Commands for encrypted envelopes")
config_app = typer.Typer(help="Commands for inspecting configuration")

app.add_typer(flow_app, name="flow")
app.add_typer(par_app, name="par")
app.add_typer(envelope_app, name="envelope")
app.add_typer(config_app, name="config")


@app.callback()
def main() -> None:
    """passkeyflow CLI entry point."""
    pass


def _fail(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED)
    raise typer.Exit(code=1)


@flow_app.command("init")
def flow_init(
    card: str = typer.Option(..., help="Payment credential reference"),
    merchant_name: str = typer.Option("Demo Merchant", help="Payee display name"),
    amount: str = typer.Option("0", help="Transaction amount"),
    currency: str = typer.Option("USD", help="ISO currency code"),
    email: Optional[str] = typer.Option(None, help="Notification email for registration"),
    authentication: bool = typer.Option(False, help="Start a payment flow instead of registration"),
    config: Optional[Path] = typer.Option(None, help="Path to passkeyflow.yaml"),
) -> None:
    """
    Start a flow and print the widget initialization URL.

    Commands are recorded in memory instead of being posted to a browser,
    so the output shows exactly what the iframe would receive.

    Example:
        passkeyflow flow init --card 4111111111111111 --email payer@example.com
    """
    settings = load_config(str(config) if config else None)
    try:
        intent = FlowIntent(
            credential_ref=card,
            merchant_name=merchant_name,
            amount=amount,
            currency=currency,
            notify_email=email,
        )
        par_client = PARClient.from_config(settings)
    except (PasskeyFlowError, ValueError) as e:
        _fail(f"Unable to start flow: {e}")

    channel = InMemoryWindowChannel()
    orchestrator = FlowOrchestrator(settings, par_client, channel=channel)
    flow_type = FlowType.AUTHENTICATION if authentication else FlowType.REGISTRATION
    initialization = asyncio.run(orchestrator.initialize_flow(intent, flow_type=flow_type))

    typer.echo(f"Correlation ID: {initialization.correlation_id}")
    typer.echo(f"State: {orchestrator.session.state.value}")
    typer.echo(f"Initialization URL: {initialization.initialization_url}")
    command = channel.last(WindowTarget.IFRAME)
    if command is not None:
        typer.echo(describe(command))


@par_app.command("submit")
def par_submit(
    card: str = typer.Option(..., help="Payment credential reference"),
    server_state: str = typer.Option(..., help="server_state token from initialization"),
    redirect_uri: Optional[str] = typer.Option(None, help="Integrator origin"),
    merchant_name: str = typer.Option("Demo Merchant", help="Payee display name"),
    amount: str = typer.Option("0", help="Transaction amount"),
    currency: str = typer.Option("USD", help="ISO currency code"),
    email: Optional[str] = typer.Option(None, help="Notification email (registration only)"),
    registration: bool = typer.Option(False, help="Send a credential binding instead of a payment probe"),
    routing_hint: Optional[str] = typer.Option(None, help="Data-center hint from initialization"),
    dry_run: bool = typer.Option(False, help="Print the protected request without sending it"),
    config: Optional[Path] = typer.Option(None, help="Path to passkeyflow.yaml"),
) -> None:
    """Build, protect and submit a single PAR."""
    settings = load_config(str(config) if config else None)
    try:
        client = PARClient.from_config(settings)
        payee = payee_for(settings.merchant.origin, merchant_name)
        if registration:
            detail = build_registration_detail(card, payee, email)
            _, challenge = generate_pkce_pair()
        else:
            detail = build_authentication_detail(card, payee, amount, currency)
            challenge = ""
        request = PARRequest.for_detail(
            detail,
            server_state=server_state,
            redirect_uri=redirect_uri or settings.merchant.integrator_origin,
            code_challenge=challenge,
        )
    except (PasskeyFlowError, ValueError) as e:
        _fail(f"Unable to build PAR: {e}")

    if dry_run:
        signed = request.model_copy(update={"client_assertion": client.signer.client_assertion()})
        wire_body, mac_body = client.build_body(signed)
        typer.echo(f"POST {client.url}")
        for name, value in client.build_headers(mac_body, routing_hint).items():
            if name.lower() in ("authorization", "x-pay-token"):
                value = "***"
            typer.echo(f"{name}: {value}")
        typer.echo(wire_body)
        return

    result = asyncio.run(client.submit(request, routing_hint=routing_hint))
    typer.echo(result.model_dump_json(indent=2))
    if not result.ok:
        raise typer.Exit(code=1)


@par_app.command("callback")
def par_callback(
    code: Optional[str] = typer.Option(None, help="Authorization code"),
    state: Optional[str] = typer.Option(None, help="Returned state"),
    error: Optional[str] = typer.Option(None, help="Returned error code"),
    error_description: Optional[str] = typer.Option(None, help="Returned error description"),
    expected_state: Optional[str] = typer.Option(None, help="State sent with the request"),
) -> None:
    """Classify the redirect URI callback of an authorization."""
    result = process_callback(code, state, error, error_description, expected_state)
    typer.echo(result.model_dump_json(indent=2))
    if not result.success:
        raise typer.Exit(code=1)


@envelope_app.command("encrypt")
def envelope_encrypt(
    payload: str = typer.Argument(..., help="JSON document to encrypt"),
    key: Path = typer.Option(..., help="Recipient certificate or public key (PEM)"),
    kid: str = typer.Option(..., help="Key id placed in the envelope header"),
) -> None:
    """Encrypt a JSON document into a compact envelope."""
    try:
        document = json.loads(payload)
    except ValueError as e:
        _fail(f"Payload is not JSON: {e}")
    try:
        envelope = encrypt_envelope(document, load_public_key(str(key)), kid)
    except PasskeyFlowError as e:
        _fail(str(e))
    typer.echo(envelope)


@envelope_app.command("decrypt")
def envelope_decrypt(
    envelope: str = typer.Argument(..., help="Compact envelope"),
    key: Path = typer.Option(..., help="Recipient private key (PEM)"),
    max_age: Optional[float] = typer.Option(None, help="Reject envelopes older than this many seconds"),
) -> None:
    """Decrypt a compact envelope and print its JSON payload."""
    try:
        document = decrypt_envelope(envelope, load_private_key(str(key)), max_age=max_age)
    except PasskeyFlowError as e:
        _fail(str(e))
    typer.echo(json.dumps(document, indent=2))


@config_app.command("check")
def config_check(
    config: Optional[Path] = typer.Option(None, help="Path to passkeyflow.yaml"),
) -> None:
    """Report every configuration problem found."""
    report = validate_configuration(load_config(str(config) if config else None))
    typer.echo(f"Environment: {report.environment}")
    typer.echo(f"API base URL: {report.api_base_url}")
    if report.valid:
        typer.echo("Configuration OK")
        return
    for issue in report.issues:
        typer.echo(f"- {issue}")
    raise typer.Exit(code=1)
