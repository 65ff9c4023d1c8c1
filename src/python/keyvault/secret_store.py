"""AWS Secrets Manager access via boto3."""

import logging
from datetime import datetime
from typing import Optional

import boto3
import botocore.exceptions

from .models import AWSCredentials, PayloadError, SecretPayload

logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Raised when no usable AWS session is available."""

    pass


class SecretStoreError(Exception):
    """Raised when a Secrets Manager call fails."""

    pass


class SecretStore:
    """Thin wrapper over the Secrets Manager and STS clients for one region."""

    def __init__(
        self,
        region: str,
        credentials: Optional[AWSCredentials] = None,
        session: Optional[boto3.session.Session] = None,
    ):
        if session is None:
            kwargs = {"region_name": region}
            if credentials is not None:
                kwargs["aws_access_key_id"] = credentials.access_key_id
                kwargs["aws_secret_access_key"] = credentials.secret_access_key
            session = boto3.session.Session(**kwargs)

        self.region = region
        self.secretsmanager = session.client("secretsmanager", region_name=region)
        self.sts = session.client("sts", region_name=region)

    def check_authenticated(self) -> str:
        """Verify the session by calling sts:GetCallerIdentity.

        Returns:
            ARN of the authenticated caller

        Raises:
            AuthenticationError: If credentials are missing or rejected
        """
        try:
            identity = self.sts.get_caller_identity()
        except botocore.exceptions.NoCredentialsError as e:
            raise AuthenticationError(
                "Not authenticated with AWS. Run: aws configure"
            ) from e
        except (botocore.exceptions.ClientError, botocore.exceptions.BotoCoreError) as e:
            raise AuthenticationError(f"AWS authentication failed: {e}") from e

        logger.debug("Authenticated as %s", identity["Arn"])
        return identity["Arn"]

    def put_secret_value(self, secret_id: str, payload: SecretPayload) -> tuple[str, str]:
        """Store the payload as the new current version of the secret.

        Returns:
            Tuple of (version_id, secret_arn)

        Raises:
            SecretStoreError: If the call fails
        """
        try:
            response = self.secretsmanager.put_secret_value(
                SecretId=secret_id,
                SecretString=payload.to_json(),
            )
        except (botocore.exceptions.ClientError, botocore.exceptions.BotoCoreError) as e:
            raise SecretStoreError(f"Failed to upload secret {secret_id}: {e}") from e

        logger.debug("Stored version %s of %s", response["VersionId"], secret_id)
        return response["VersionId"], response["ARN"]

    def get_secret_value(self, secret_id: str) -> SecretPayload:
        """Fetch and parse the current version of the secret.

        Raises:
            SecretStoreError: If the call fails
            PayloadError: If the current value is not a key payload
        """
        try:
            response = self.secretsmanager.get_secret_value(
                SecretId=secret_id,
                VersionStage="AWSCURRENT",
            )
        except (botocore.exceptions.ClientError, botocore.exceptions.BotoCoreError) as e:
            raise SecretStoreError(f"Failed to read secret {secret_id}: {e}") from e

        try:
            return SecretPayload.from_json(response.get("SecretString"))
        except PayloadError as e:
            raise PayloadError(
                f"Secret {secret_id} does not hold a key yet ({e}). Run 'keyvault upload-key'"
            ) from e

    def list_versions(self, secret_id: str) -> list[tuple[str, list[str], Optional[datetime]]]:
        """List versions of the secret, newest first.

        Returns:
            List of (version_id, stages, created_date) tuples
        """
        versions = []
        try:
            paginator = self.secretsmanager.get_paginator("list_secret_version_ids")
            for page in paginator.paginate(SecretId=secret_id, IncludeDeprecated=True):
                for entry in page.get("Versions", []):
                    versions.append((
                        entry["VersionId"],
                        entry.get("VersionStages", []),
                        entry.get("CreatedDate"),
                    ))
        except (botocore.exceptions.ClientError, botocore.exceptions.BotoCoreError) as e:
            raise SecretStoreError(f"Failed to list versions of {secret_id}: {e}") from e

        return sorted(
            versions,
            key=lambda v: v[2].timestamp() if v[2] is not None else 0,
            reverse=True,
        )
