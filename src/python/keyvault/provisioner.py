"""Key materialization workflow: generate an SSH key and upload it."""

import logging
from pathlib import Path
from typing import Callable, Optional

from .config import get_project_settings, get_pulumi_config
from .deployer import resolve_secret_name
from .keygen import check_tools, generate_key_pair, key_paths, read_key_pair
from .models import SecretPayload, UploadResult
from .secret_store import SecretStore

logger = logging.getLogger(__name__)


def _decline(path: Path) -> bool:
    return False


def materialize_key(
    confirm_overwrite: Callable[[Path], bool] = _decline,
    on_output: Callable[[str], None] = print,
    store: Optional[SecretStore] = None,
) -> UploadResult:
    """Generate a key pair and store it as a new version of the stack's secret.

    Steps run strictly in order and any failure stops the workflow before the
    next step, so nothing is uploaded unless every earlier step succeeded.

    Args:
        confirm_overwrite: Asked before replacing an existing local key
            (default: never replace)
        on_output: Callback for progress messages (default: print)
        store: Secret store client (default: one built from config)

    Returns:
        UploadResult describing the new secret version

    Raises:
        MissingToolError: If a required tool is missing
        AuthenticationError: If the AWS session is not authenticated
        DeclarationNotAppliedError: If the stack has not been deployed
        KeyOverwriteDeclined: If the operator keeps the existing key
        KeyGenerationError: If ssh-keygen fails
        SecretStoreError: If the upload fails
    """
    check_tools()
    settings = get_project_settings()
    if store is None:
        store = SecretStore(settings.region, get_pulumi_config().aws)
    caller = store.check_authenticated()
    on_output(f"✅ AWS authentication OK ({caller})")

    secret_name = resolve_secret_name()
    on_output(f"Secret name: {secret_name}")

    on_output("1. Generating SSH key pair...")
    paths = generate_key_pair(
        key_paths(settings.key_directory, settings.key_name),
        settings.key_comment,
        confirm_overwrite,
    )
    on_output("✅ SSH key generated:")
    on_output(f"   Private: {paths.private_path}")
    on_output(f"   Public:  {paths.public_path}")

    on_output("2. Creating secret payload...")
    private_key, public_key = read_key_pair(paths)
    payload = SecretPayload.build(private_key, public_key)

    on_output("3. Uploading to AWS Secrets Manager...")
    version_id, secret_arn = store.put_secret_value(secret_name, payload)
    logger.info("Uploaded version %s to %s", version_id, secret_name)

    return UploadResult(
        secret_name=secret_name,
        secret_arn=secret_arn,
        version_id=version_id,
        key_pair=paths,
        payload=payload,
    )


def retrieval_instructions(secret_name: str) -> str:
    """Commands an operator or instance can use to read the stored key."""
    fetch = (
        "  aws secretsmanager get-secret-value \\\n"
        f"    --secret-id {secret_name} \\\n"
        "    --query 'SecretString' \\\n"
        "    --output text | jq -r '.private_key'"
    )
    return (
        "Retrieve the secret:\n"
        f"{fetch}\n"
        "\n"
        "Use in EC2 user-data:\n"
        f"{fetch} > ~/.ssh/id_ed25519"
    )
