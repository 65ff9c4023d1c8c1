"""Local SSH key pair generation via ssh-keygen."""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Callable, Iterable

from .models import KEY_TYPE, KeyPair

logger = logging.getLogger(__name__)

REQUIRED_TOOLS = ("ssh-keygen", "pulumi")

INSTALL_HINTS = {
    "ssh-keygen": "Install OpenSSH (apt-get install openssh-client or brew install openssh)",
    "pulumi": "Install Pulumi: https://www.pulumi.com/docs/install/",
}


class MissingToolError(Exception):
    """Raised when a required command line tool is not on PATH."""

    pass


class KeyGenerationError(Exception):
    """Raised when ssh-keygen fails or produces no key files."""

    pass


class KeyOverwriteDeclined(Exception):
    """Raised when the operator declines to replace an existing key."""

    pass


def check_tools(tools: Iterable[str] = REQUIRED_TOOLS) -> None:
    """Verify that every required tool is callable.

    Raises:
        MissingToolError: For the first tool not found on PATH
    """
    for tool in tools:
        if shutil.which(tool) is None:
            hint = INSTALL_HINTS.get(tool, "")
            message = f"{tool} not found."
            if hint:
                message += f" {hint}"
            raise MissingToolError(message)
        logger.debug("Found %s", tool)


def key_paths(directory: Path, name: str) -> KeyPair:
    """Return the private and public key paths for a key name."""
    private_path = Path(directory) / name
    return KeyPair(
        private_path=private_path,
        public_path=private_path.with_name(private_path.name + ".pub"),
    )


def generate_key_pair(
    paths: KeyPair,
    comment: str,
    confirm_overwrite: Callable[[Path], bool],
) -> KeyPair:
    """Generate a new ed25519 key pair at the given paths.

    If a private key already exists, confirm_overwrite decides whether it is
    replaced. Declining leaves both files untouched.

    Args:
        paths: Target key paths
        comment: Comment embedded in the public key
        confirm_overwrite: Called with the existing private key path

    Returns:
        The generated KeyPair

    Raises:
        KeyOverwriteDeclined: If the operator declines to overwrite
        KeyGenerationError: If ssh-keygen fails
    """
    if paths.private_path.exists():
        if not confirm_overwrite(paths.private_path):
            raise KeyOverwriteDeclined(f"Existing key at {paths.private_path} kept")
        paths.private_path.unlink()
        paths.public_path.unlink(missing_ok=True)

    paths.private_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    try:
        subprocess.run(
            [
                "ssh-keygen",
                "-t", KEY_TYPE,
                "-f", str(paths.private_path),
                "-N", "",
                "-C", comment,
            ],
            capture_output=True,
            text=True,
            check=True,
        )
    except subprocess.CalledProcessError as e:
        raise KeyGenerationError(f"ssh-keygen failed: {e.stderr.strip()}") from e
    except FileNotFoundError:
        raise KeyGenerationError("ssh-keygen not found") from None

    if not paths.private_path.exists() or not paths.public_path.exists():
        raise KeyGenerationError(f"Key generation failed: no key written to {paths.private_path}")

    logger.debug("Generated %s key at %s", KEY_TYPE, paths.private_path)
    return paths


def read_key_pair(paths: KeyPair) -> tuple[str, str]:
    """Read both halves of a key pair, without trailing newlines."""
    private_key = paths.private_path.read_text().rstrip("\n")
    public_key = paths.public_path.read_text().rstrip("\n")
    return private_key, public_key
