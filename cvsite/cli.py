"""Click CLI for operating the CV site: signing, delivery, diagnostics."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import click

from cvsite.audit.logger import validate_audit_chain
from cvsite.config import Settings, check_production_readiness, validate_production_config
from cvsite.cv.models import Section
from cvsite.webhook.sender import WebhookSender, signed_headers


@click.group()
def cli() -> None:
    """cv-site operator CLI."""


@cli.command()
@click.argument("payload_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--secret", envvar="WEBHOOK_SECRET", required=True, help="Shared webhook secret.")
def sign(payload_file: str, secret: str) -> None:
    """Print the headers that authenticate PAYLOAD_FILE's exact bytes."""
    body = Path(payload_file).read_bytes()
    headers = signed_headers(body, secret)
    click.echo(f"X-Signature-256: {headers['X-Signature-256']}")
    click.echo(f"X-Timestamp: {headers['X-Timestamp']}")


@cli.command()
@click.argument("url")
@click.option(
    "--section", required=True, type=click.Choice([s.value for s in Section]),
    help="CV section to replace.",
)
@click.option(
    "--data-file", required=True, type=click.Path(exists=True, dir_okay=False),
    help="JSON file with the section data.",
)
@click.option("--secret", envvar="WEBHOOK_SECRET", required=True, help="Shared webhook secret.")
def send(url: str, section: str, data_file: str, secret: str) -> None:
    """Sign and POST a section update to URL."""
    data = json.loads(Path(data_file).read_text())
    sender = WebhookSender(url, secret)
    resp = asyncio.run(sender.send_section(section, data))
    click.echo(f"{resp.status_code} {resp.text}")
    if resp.status_code >= 400:
        sys.exit(1)


@cli.command("check-config")
def check_config() -> None:
    """Validate production settings from the environment."""
    settings = Settings.from_env()
    validation = validate_production_config(settings)
    readiness = check_production_readiness(settings)
    click.echo(json.dumps({"validation": validation, "readiness": readiness}, indent=2))
    if not validation["valid"]:
        sys.exit(1)


@cli.group("audit")
def audit_group() -> None:
    """Inspect the audit log."""


@audit_group.command("verify")
@click.argument("log_path", type=click.Path(exists=True, dir_okay=False))
def audit_verify(log_path: str) -> None:
    """Check the hash chain of LOG_PATH."""
    result = validate_audit_chain(Path(log_path))
    if result.valid:
        click.echo(f"OK: {result.lines_checked} entries verified")
        return
    click.echo(f"BROKEN: chain fails at line {result.broken_at_line}", err=True)
    sys.exit(1)


@cli.command()
@click.option("--host", default="127.0.0.1", help="Bind address.")
@click.option("--port", default=8000, type=int, help="Bind port.")
def serve(host: str, port: int) -> None:
    """Run the API with uvicorn using environment configuration."""
    import uvicorn

    uvicorn.run("cvsite.api.app:create_app_from_env", factory=True, host=host, port=port)
