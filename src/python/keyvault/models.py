"""Data models for keyvault."""

import json
from dataclasses import asdict, dataclass, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

KEY_TYPE = "ed25519"
PAYLOAD_DESCRIPTION = "SSH key generated and managed by Pulumi"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


class PayloadError(Exception):
    """Raised when a secret value is not a valid key payload."""

    pass


@dataclass
class AWSCredentials:
    """Static AWS credentials for the Pulumi backend and the secret store."""

    access_key_id: str
    secret_access_key: str


@dataclass
class PulumiConfig:
    """Pulumi backend configuration."""

    stack: str
    backend: Optional[str] = None
    aws: Optional[AWSCredentials] = None


@dataclass
class ProjectSettings:
    """Settings shared by the declaration and the key workflow."""

    project: str
    environment: str
    region: str
    key_name: str
    key_directory: Path
    key_comment: str
    recovery_window_days: int = 7


@dataclass
class KeyPair:
    """Local paths of a generated key pair."""

    private_path: Path
    public_path: Path


@dataclass
class SecretPayload:
    """The JSON document stored as each secret version."""

    private_key: str
    public_key: str
    key_type: str
    created_at: str
    description: str

    @classmethod
    def build(
        cls, private_key: str, public_key: str, now: Optional[datetime] = None
    ) -> "SecretPayload":
        """Assemble a payload for a freshly generated key pair.

        Args:
            private_key: OpenSSH private key text
            public_key: OpenSSH public key line
            now: Creation time (default: current UTC time)

        Returns:
            SecretPayload with the fixed key type and description
        """
        now = now or datetime.now(timezone.utc)
        return cls(
            private_key=private_key,
            public_key=public_key,
            key_type=KEY_TYPE,
            created_at=now.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT),
            description=PAYLOAD_DESCRIPTION,
        )

    @classmethod
    def from_json(cls, text: str) -> "SecretPayload":
        """Parse a secret string back into a payload.

        Raises:
            PayloadError: If the text is not a complete key payload
        """
        try:
            data = json.loads(text)
        except (TypeError, json.JSONDecodeError) as e:
            raise PayloadError(f"Secret value is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise PayloadError("Secret value is not a JSON object")

        values = {}
        for f in fields(cls):
            value = data.get(f.name)
            if not isinstance(value, str):
                raise PayloadError(f"Secret value is missing string field '{f.name}'")
            values[f.name] = value

        payload = cls(**values)
        payload.created_at_datetime()
        return payload

    def created_at_datetime(self) -> datetime:
        """Return created_at as an aware UTC datetime."""
        try:
            parsed = datetime.strptime(self.created_at, TIMESTAMP_FORMAT)
        except ValueError as e:
            raise PayloadError(f"Invalid created_at timestamp: {self.created_at}") from e
        return parsed.replace(tzinfo=timezone.utc)

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=2)


@dataclass
class UploadResult:
    """Outcome of a successful key upload."""

    secret_name: str
    secret_arn: str
    version_id: str
    key_pair: KeyPair
    payload: SecretPayload
