"""Pulumi declaration of the SSH key secret, its reader role and policy."""

import json
from pathlib import Path

import pulumi
import pulumi_aws as aws
from pulumi import ComponentResource, ResourceOptions

from .models import ProjectSettings

# Only these two actions are granted on the secret
READ_ACTIONS = [
    "secretsmanager:GetSecretValue",
    "secretsmanager:DescribeSecret",
]

INSTANCE_SERVICE = "ec2.amazonaws.com"

PLACEHOLDER_NOTE = (
    "Placeholder value. Run 'keyvault upload-key' to store the real SSH key."
)


def resource_tags(settings: ProjectSettings, name: str) -> dict[str, str]:
    """Tags applied to every taggable resource."""
    return {
        "Project": settings.project,
        "Environment": settings.environment,
        "ManagedBy": "pulumi",
        "Name": name,
    }


def assume_role_policy(service: str = INSTANCE_SERVICE) -> dict:
    """Trust policy letting a single AWS service assume the role."""
    return {
        "Version": "2012-10-17",
        "Statement": [{
            "Effect": "Allow",
            "Principal": {"Service": service},
            "Action": "sts:AssumeRole",
        }],
    }


def read_policy(secret_arn: str) -> dict:
    """Policy granting read-only access to exactly one secret.

    Args:
        secret_arn: ARN of the secret to grant access to

    Returns:
        IAM policy document

    Raises:
        ValueError: If the ARN is empty or contains a wildcard
    """
    if not secret_arn:
        raise ValueError("A secret ARN is required for the read policy")
    if "*" in secret_arn:
        raise ValueError(f"Wildcard ARNs are not allowed in the read policy: {secret_arn}")

    return {
        "Version": "2012-10-17",
        "Statement": [{
            "Effect": "Allow",
            "Action": list(READ_ACTIONS),
            "Resource": [secret_arn],
        }],
    }


def settings_from_config(
    config, aws_config, default_project: str, default_environment: str
) -> ProjectSettings:
    """Build settings for the standalone program from Pulumi stack config."""
    key_name = config.get("key_name") or "secrets-demo-key"
    # 0 is a valid window (force delete), so only fall back when unset
    recovery_window_days = config.get_int("recovery_window_days")

    return ProjectSettings(
        project=config.get("project") or default_project,
        environment=config.get("environment") or default_environment,
        region=aws_config.get("region") or "us-east-1",
        key_name=key_name,
        key_directory=Path("~/.ssh").expanduser(),
        key_comment=f"{key_name}@secrets-manager",
        recovery_window_days=7 if recovery_window_days is None else recovery_window_days,
    )


def placeholder_payload() -> str:
    """Fixed, non-secret value seeded into the secret at creation time."""
    return json.dumps({"placeholder": True, "note": PLACEHOLDER_NOTE})


class SecretsStack(ComponentResource):
    def __init__(self, name: str, settings: ProjectSettings, opts=None):
        super().__init__("keyvault:secrets-stack", name, None, opts)
        self.settings = settings
        self.prefix = f"{settings.project}-{settings.environment}"

        self.secret = None
        self.placeholder_version = None
        self.role = None
        self.instance_profile = None
        self.read_policy = None
        self.read_policy_attachment = None

        self._create_resources()
        self.register_outputs({
            "secret_name": self.secret.name,
            "secret_arn": self.secret.arn,
            "policy_arn": self.read_policy.arn,
            "role_arn": self.role.arn,
        })

    def _create_resources(self):
        """Internal method to create all resources. Called from __init__."""
        self.create_secret()
        self.create_role()
        self.create_read_policy()

    def create_secret(self):
        """Create the secret container and its placeholder version"""
        self.secret = aws.secretsmanager.Secret(
            f"{self.prefix}-ssh-key",
            # AWS appends a random suffix to the prefix
            name_prefix=f"{self.prefix}-ssh-key-",
            description=f"SSH key pair for {self.settings.project} ({self.settings.environment})",
            recovery_window_in_days=self.settings.recovery_window_days,
            tags=resource_tags(self.settings, f"{self.prefix}-ssh-key"),
            opts=ResourceOptions(parent=self)
        )

        # The real value is uploaded out-of-band, so never revert it on re-apply
        self.placeholder_version = aws.secretsmanager.SecretVersion(
            f"{self.prefix}-ssh-key-placeholder",
            secret_id=self.secret.id,
            secret_string=placeholder_payload(),
            opts=ResourceOptions(parent=self, ignore_changes=["secret_string"])
        )

    def create_role(self):
        """Create the instance role and its instance profile"""
        self.role = aws.iam.Role(
            f"{self.prefix}-ssh-key-reader",
            assume_role_policy=json.dumps(assume_role_policy()),
            description="Allows EC2 instances to read the SSH key secret",
            tags=resource_tags(self.settings, f"{self.prefix}-ssh-key-reader"),
            opts=ResourceOptions(parent=self)
        )

        self.instance_profile = aws.iam.InstanceProfile(
            f"{self.prefix}-ssh-key-reader-profile",
            role=self.role.name,
            tags=resource_tags(self.settings, f"{self.prefix}-ssh-key-reader-profile"),
            opts=ResourceOptions(parent=self)
        )

    def create_read_policy(self):
        """Create the read policy scoped to the secret and attach it to the role"""
        self.read_policy = aws.iam.Policy(
            f"{self.prefix}-ssh-key-read",
            description="Read-only access to the SSH key secret",
            policy=self.secret.arn.apply(lambda arn: json.dumps(read_policy(arn))),
            tags=resource_tags(self.settings, f"{self.prefix}-ssh-key-read"),
            opts=ResourceOptions(parent=self)
        )

        self.read_policy_attachment = aws.iam.RolePolicyAttachment(
            f"{self.prefix}-ssh-key-read-attachment",
            role=self.role.name,
            policy_arn=self.read_policy.arn,
            opts=ResourceOptions(parent=self)
        )


def declare(settings: ProjectSettings) -> SecretsStack:
    """Declare the stack resources and export their identifiers."""
    stack = SecretsStack(f"{settings.project}-{settings.environment}", settings)

    pulumi.export("secret_name", stack.secret.name)
    pulumi.export("secret_arn", stack.secret.arn)
    pulumi.export("policy_arn", stack.read_policy.arn)
    pulumi.export("role_arn", stack.role.arn)
    pulumi.export("role_name", stack.role.name)
    pulumi.export("instance_profile_name", stack.instance_profile.name)

    return stack
