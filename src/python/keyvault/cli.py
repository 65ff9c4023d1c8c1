"""Click CLI commands for keyvault."""

import logging
import os
import sys
from pathlib import Path

import click

from . import __version__
from .config import ConfigError, get_project_settings, get_pulumi_config
from .deployer import (
    DeployerError,
    deploy_stack,
    destroy_stack,
    get_outputs,
    preview_stack,
    resolve_secret_name,
)
from .keygen import KeyGenerationError, KeyOverwriteDeclined, MissingToolError
from .models import PayloadError
from .provisioner import materialize_key, retrieval_instructions
from .secret_store import AuthenticationError, SecretStore, SecretStoreError

# Every failure the workflow can raise; each one ends the command with exit code 1
WORKFLOW_ERRORS = (
    ConfigError,
    DeployerError,
    MissingToolError,
    KeyGenerationError,
    KeyOverwriteDeclined,
    AuthenticationError,
    SecretStoreError,
    PayloadError,
)


def _fail(message: str) -> None:
    click.echo(f"❌ {message}", err=True)
    sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Provision an SSH key secret on AWS and manage its value."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
def preview() -> None:
    """Preview changes to the secrets stack."""
    try:
        result = preview_stack()
    except WORKFLOW_ERRORS as e:
        _fail(str(e))
    _print_change_summary(result)


@cli.command()
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
def deploy(yes: bool) -> None:
    """Create or update the secret, role and read policy."""
    if not yes:
        click.confirm("Deploy the secrets stack?", abort=True)

    try:
        result = deploy_stack()
    except WORKFLOW_ERRORS as e:
        _fail(str(e))
    _print_outputs(result.outputs)


@cli.command()
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
def destroy(yes: bool) -> None:
    """Destroy the secrets stack."""
    if not yes:
        click.confirm(
            "Destroy the secrets stack? The secret and all its versions will be scheduled for deletion.",
            abort=True,
        )

    try:
        result = destroy_stack()
    except WORKFLOW_ERRORS as e:
        _fail(str(e))

    click.echo("\nDestruction complete.")
    if result.summary.result == "succeeded":
        click.echo("All resources have been removed.")


@cli.command()
def outputs() -> None:
    """Show the outputs recorded by the last deployment."""
    try:
        values = get_outputs()
    except WORKFLOW_ERRORS as e:
        _fail(str(e))
    _print_outputs(values)


@cli.command("upload-key")
def upload_key() -> None:
    """Generate an SSH key pair and upload it as a new secret version."""
    click.echo("========================================")
    click.echo("SSH Key Generation & Upload")
    click.echo("========================================\n")

    def confirm_overwrite(path: Path) -> bool:
        click.echo(f"⚠️  Key already exists at {path}")
        return click.confirm("Overwrite?", default=False)

    try:
        result = materialize_key(confirm_overwrite=confirm_overwrite, on_output=click.echo)
    except KeyOverwriteDeclined:
        _fail("Aborted.")
    except WORKFLOW_ERRORS as e:
        _fail(str(e))

    click.echo("✅ Secret uploaded successfully!")
    click.echo(f"   Version: {result.version_id}")
    click.echo("")
    click.echo(f"Private key location: {result.key_pair.private_path}")
    click.echo(f"Public key location:  {result.key_pair.public_path}")
    click.echo("")
    click.echo(retrieval_instructions(result.secret_name))


@cli.command("fetch-key")
@click.option("--output", "-o", "output_path", type=click.Path(dir_okay=False, path_type=Path),
              help="Write the private key to this file (mode 0600)")
@click.option("--public-only", is_flag=True,
              help="Print only the public key line, e.g. for authorized_keys")
@click.option("--versions", "show_versions", is_flag=True, help="List stored versions")
def fetch_key(output_path: Path | None, public_only: bool, show_versions: bool) -> None:
    """Fetch the current SSH key from the secret."""
    try:
        settings = get_project_settings()
        store = SecretStore(settings.region, get_pulumi_config().aws)
        secret_name = resolve_secret_name()

        if show_versions:
            click.echo(f"Versions of {secret_name}:")
            for version_id, stages, created in store.list_versions(secret_name):
                created_text = created.isoformat() if created else "unknown"
                click.echo(f"  {version_id}  {created_text}  {','.join(stages)}")
            return

        payload = store.get_secret_value(secret_name)
    except WORKFLOW_ERRORS as e:
        _fail(str(e))

    if public_only:
        click.echo(payload.public_key)
    else:
        click.echo(f"Key type:   {payload.key_type}")
        click.echo(f"Created at: {payload.created_at}")
        click.echo(f"Public key: {payload.public_key}")

    if output_path is not None:
        output_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        fd = os.open(output_path, os.O_WRONLY | os.O_CREAT, 0o600)
        # An existing file keeps its mode on open, so restrict it before writing
        os.fchmod(fd, 0o600)
        os.ftruncate(fd, 0)
        with os.fdopen(fd, "w") as f:
            f.write(payload.private_key + "\n")
        click.echo(f"Private key written to {output_path}")


def _print_change_summary(result) -> None:
    """Print a summary of changes from preview."""
    summary = result.change_summary
    if summary:
        click.echo("\nChange summary:")
        for change_type, count in summary.items():
            if count > 0:
                click.echo(f"  {change_type}: {count}")
    else:
        click.echo("No changes detected.")


def _print_outputs(values) -> None:
    """Print stack outputs."""
    if values:
        click.echo("\nOutputs:")
        for key, value in values.items():
            click.echo(f"  {key}: {value.value}")
    else:
        click.echo("\nNo outputs recorded.")
