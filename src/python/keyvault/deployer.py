"""Pulumi Automation API orchestration for the secrets stack."""

import logging
import os
from pathlib import Path
from typing import Callable, Optional

from pulumi import automation as auto

from .config import get_project_settings, get_pulumi_config
from .declaration import declare
from .models import ProjectSettings, PulumiConfig

logger = logging.getLogger(__name__)

# Working directory for Pulumi operations
WORK_DIR = Path(os.environ.get("KEYVAULT_WORK_DIR", ".pulumi-work"))


class DeployerError(Exception):
    """Raised when stack operations fail."""

    pass


class DeclarationNotAppliedError(DeployerError):
    """Raised when the stack or one of its outputs has not been created yet."""

    pass


def _ensure_work_dir() -> None:
    """Ensure the Pulumi working directory exists."""
    WORK_DIR.mkdir(parents=True, exist_ok=True)


def _create_pulumi_program(settings: ProjectSettings) -> Callable[[], None]:
    """Create the inline Pulumi program for the given settings."""

    def pulumi_program() -> None:
        declare(settings)

    return pulumi_program


def _workspace_options(
    settings: ProjectSettings, pulumi_config: PulumiConfig
) -> auto.LocalWorkspaceOptions:
    """Build workspace options with backend and environment for the stack."""
    _ensure_work_dir()

    project_settings = auto.ProjectSettings(
        name=settings.project,
        runtime="python",
        backend=auto.ProjectBackend(url=pulumi_config.backend) if pulumi_config.backend else None,
    )

    env_vars = {
        # Passphrase for encrypting secrets in state
        "PULUMI_CONFIG_PASSPHRASE": os.environ.get("PULUMI_CONFIG_PASSPHRASE", ""),
        "AWS_REGION": settings.region,
    }
    if pulumi_config.aws is not None:
        env_vars["AWS_ACCESS_KEY_ID"] = pulumi_config.aws.access_key_id
        env_vars["AWS_SECRET_ACCESS_KEY"] = pulumi_config.aws.secret_access_key

    return auto.LocalWorkspaceOptions(
        work_dir=str(WORK_DIR),
        project_settings=project_settings,
        env_vars=env_vars,
    )


def _get_or_create_stack(
    settings: ProjectSettings, pulumi_config: PulumiConfig
) -> auto.Stack:
    """Get or create the Pulumi stack and pin its AWS region.

    Raises:
        DeployerError: If the backend cannot be reached or the stack set up
    """
    try:
        stack = auto.create_or_select_stack(
            stack_name=pulumi_config.stack,
            project_name=settings.project,
            program=_create_pulumi_program(settings),
            opts=_workspace_options(settings, pulumi_config),
        )
        stack.set_config("aws:region", auto.ConfigValue(value=settings.region))
    except auto.CommandError as e:
        raise DeployerError(f"Could not open stack '{pulumi_config.stack}': {e}") from e
    return stack


def _select_stack(settings: ProjectSettings, pulumi_config: PulumiConfig) -> auto.Stack:
    """Select an existing stack without creating it.

    Raises:
        DeclarationNotAppliedError: If the stack does not exist
        DeployerError: If the backend cannot be reached
    """
    try:
        return auto.select_stack(
            stack_name=pulumi_config.stack,
            project_name=settings.project,
            program=_create_pulumi_program(settings),
            opts=_workspace_options(settings, pulumi_config),
        )
    except auto.StackNotFoundError as e:
        raise DeclarationNotAppliedError(
            f"Stack '{pulumi_config.stack}' not found. Run 'keyvault deploy' first"
        ) from e
    except auto.CommandError as e:
        raise DeployerError(f"Could not open stack '{pulumi_config.stack}': {e}") from e


def _load_stack(create: bool = True) -> auto.Stack:
    settings = get_project_settings()
    pulumi_config = get_pulumi_config()
    if create:
        return _get_or_create_stack(settings, pulumi_config)
    return _select_stack(settings, pulumi_config)


def preview_stack(on_output: Callable[[str], None] = print) -> auto.PreviewResult:
    """Preview changes to the stack without applying them.

    Args:
        on_output: Callback for output messages (default: print)

    Returns:
        PreviewResult containing change summary

    Raises:
        DeployerError: If preview fails
    """
    stack = _load_stack()
    try:
        return stack.preview(on_output=on_output)
    except auto.CommandError as e:
        raise DeployerError(f"Preview failed: {e}") from e


def deploy_stack(on_output: Callable[[str], None] = print) -> auto.UpResult:
    """Converge the stack to the declared state.

    Args:
        on_output: Callback for output messages (default: print)

    Returns:
        UpResult containing stack outputs

    Raises:
        DeployerError: If the update fails
    """
    stack = _load_stack()
    try:
        return stack.up(on_output=on_output)
    except auto.CommandError as e:
        raise DeployerError(f"Deployment failed: {e}") from e


def destroy_stack(on_output: Callable[[str], None] = print) -> auto.DestroyResult:
    """Destroy all resources in the stack.

    Args:
        on_output: Callback for output messages (default: print)

    Returns:
        DestroyResult from the operation

    Raises:
        DeployerError: If destruction fails
    """
    stack = _load_stack()
    try:
        return stack.destroy(on_output=on_output)
    except auto.CommandError as e:
        raise DeployerError(f"Destruction failed: {e}") from e


def get_outputs() -> dict[str, auto.OutputValue]:
    """Read the outputs recorded by the last deployment.

    Raises:
        DeclarationNotAppliedError: If the stack does not exist
        DeployerError: If outputs cannot be read
    """
    stack = _load_stack(create=False)
    try:
        return stack.outputs()
    except auto.CommandError as e:
        raise DeployerError(f"Could not read stack outputs: {e}") from e


def resolve_secret_name(outputs: Optional[dict[str, auto.OutputValue]] = None) -> str:
    """Return the secret name recorded by the stack.

    Raises:
        DeclarationNotAppliedError: If the stack has no secret_name output
    """
    if outputs is None:
        outputs = get_outputs()

    output = outputs.get("secret_name")
    secret_name = output.value if output is not None else None
    if not secret_name:
        raise DeclarationNotAppliedError(
            "Could not get secret name from stack outputs. Run 'keyvault deploy' first"
        )

    logger.debug("Resolved secret name %s", secret_name)
    return secret_name
