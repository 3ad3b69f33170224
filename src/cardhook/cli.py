"""cardhook CLI - key management and signature tooling."""

import base64
import secrets
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from cardhook.common.settings import Settings, get_settings
from cardhook.signature.canonical import signature_for
from cardhook.signature.keys import (
    KeyConfigurationError,
    KeyNotFoundError,
    KeyRing,
    decode_secret,
    load_encoded_keys,
)
from cardhook.signature.signer import current_timestamp
from cardhook.signature.verifier import HeaderNames, verify

console = Console()

KEY_BYTES = 32


def _load_ring(settings: Settings) -> KeyRing:
    try:
        return KeyRing.from_encoded(load_encoded_keys(settings))
    except KeyConfigurationError as e:
        console.print(f"[red]Key configuration error: {e}[/red]")
        sys.exit(1)


def _read_body(body: str | None, body_file: str | None) -> bytes | None:
    if body is not None and body_file is not None:
        console.print("[red]Use either --body or --body-file, not both[/red]")
        sys.exit(1)
    if body_file is not None:
        return Path(body_file).read_bytes()
    if body is not None:
        return body.encode("utf-8")
    return None


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """cardhook CLI - Sign and verify card transaction webhooks."""
    ctx.ensure_object(dict)
    if "settings" not in ctx.obj:
        ctx.obj["settings"] = get_settings()


# === Keys ===


@cli.command("generate-key")
def generate_key() -> None:
    """Generate a new API key id and secret."""
    key_id = base64.b64encode(secrets.token_bytes(KEY_BYTES)).decode("ascii")
    secret = base64.b64encode(secrets.token_bytes(KEY_BYTES)).decode("ascii")

    console.print(f"API key:    {key_id}")
    console.print(f"API secret: {secret}")
    console.print("\n[yellow]Share the secret only over a secure channel and never commit it.[/yellow]")


@cli.command("keys")
@click.pass_context
def list_keys(ctx: click.Context) -> None:
    """List configured API key ids."""
    ring = _load_ring(ctx.obj["settings"])
    key_ids = ring.key_ids()

    if not key_ids:
        console.print("[yellow]No API keys configured[/yellow]")
        return

    table = Table(title="Configured API Keys")
    table.add_column("Key ID", style="cyan")
    for key_id in key_ids:
        table.add_row(key_id)

    console.print(table)


# === Signatures ===


@cli.command("sign")
@click.option("--endpoint", "-e", required=True, help="Endpoint identifier to sign")
@click.option("--key-id", "-k", help="Configured API key id to sign with")
@click.option("--secret", help="Base64 secret to sign with (instead of --key-id)")
@click.option("--timestamp", "-t", help="Epoch seconds (default: now)")
@click.option("--body", "-b", help="Body to sign, as UTF-8 text")
@click.option("--body-file", "-f", type=click.Path(exists=True, dir_okay=False), help="Body file")
@click.pass_context
def sign_cmd(
    ctx: click.Context,
    endpoint: str,
    key_id: str | None,
    secret: str | None,
    timestamp: str | None,
    body: str | None,
    body_file: str | None,
) -> None:
    """Print signature headers for a payload (omit body options for no body)."""
    settings: Settings = ctx.obj["settings"]
    names = HeaderNames.from_settings(settings)

    if bool(key_id) == bool(secret):
        console.print("[red]Provide exactly one of --key-id or --secret[/red]")
        sys.exit(1)

    try:
        if secret:
            secret_bytes = decode_secret("--secret", secret)
        else:
            secret_bytes = _load_ring(settings).resolve(key_id)  # type: ignore[arg-type]
    except (KeyConfigurationError, KeyNotFoundError) as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    payload = _read_body(body, body_file)
    timestamp = timestamp or current_timestamp()

    click.echo(f"{names.endpoint}: {endpoint}")
    click.echo(f"{names.timestamp}: {timestamp}")
    if key_id:
        click.echo(f"{names.api_key}: {key_id}")
    click.echo(f"{names.signature}: {signature_for(secret_bytes, timestamp, endpoint, payload)}")


@cli.command("verify")
@click.option("--endpoint", "-e", required=True, help="Endpoint identifier header value")
@click.option("--timestamp", "-t", required=True, help="Timestamp header value")
@click.option("--signature", "-s", required=True, help="Signature header value")
@click.option("--key-id", "-k", required=True, help="API key id header value")
@click.option("--body", "-b", help="Request body as UTF-8 text")
@click.option("--body-file", "-f", type=click.Path(exists=True, dir_okay=False), help="Body file")
@click.pass_context
def verify_cmd(
    ctx: click.Context,
    endpoint: str,
    timestamp: str,
    signature: str,
    key_id: str,
    body: str | None,
    body_file: str | None,
) -> None:
    """Verify a request signature against configured keys."""
    settings: Settings = ctx.obj["settings"]
    names = HeaderNames.from_settings(settings)
    ring = _load_ring(settings)

    headers = {
        names.endpoint: endpoint,
        names.timestamp: timestamp,
        names.signature: signature,
        names.api_key: key_id,
    }
    raw_body = _read_body(body, body_file) or b""
    result = verify(headers, raw_body, ring, names)

    if result.accepted:
        console.print("[green]✓ Signature accepted[/green]")
    else:
        console.print(f"[red]✗ Signature rejected: {result.outcome}[/red]")
        sys.exit(1)


# === Server ===


@cli.command("serve")
@click.option("--host", help="Bind host (default from settings)")
@click.option("--port", type=int, help="Bind port (default from settings)")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Run the webhook server."""
    import uvicorn

    from cardhook.common.logging import setup_logging
    from cardhook.server.main import create_app

    settings: Settings = ctx.obj["settings"]
    setup_logging(settings.log_level, settings.log_json)
    try:
        app = create_app(settings)
    except KeyConfigurationError as e:
        console.print(f"[red]Key configuration error: {e}[/red]")
        sys.exit(1)

    uvicorn.run(
        app,
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
    )


def main() -> None:
    """CLI entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
