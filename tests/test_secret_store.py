"""Tests for keyvault.secret_store — boto3 calls checked with botocore Stubber."""

import json
from datetime import datetime, timezone
from unittest.mock import patch

import boto3
import pytest
from botocore.exceptions import EndpointConnectionError, ReadTimeoutError
from botocore.stub import ANY, Stubber

from keyvault.models import PayloadError, SecretPayload
from keyvault.secret_store import AuthenticationError, SecretStore, SecretStoreError

SECRET_NAME = "secrets-demo-test-ssh-key-20260101"
SECRET_ARN = f"arn:aws:secretsmanager:us-east-1:123456789012:secret:{SECRET_NAME}-AbCdEf"
VERSION_A = "a" * 32
VERSION_B = "b" * 32


@pytest.fixture
def store():
    session = boto3.session.Session(
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
        region_name="us-east-1",
    )
    return SecretStore("us-east-1", session=session)


@pytest.fixture
def payload():
    return SecretPayload.build("PRIVATE", "PUBLIC")


class TestCheckAuthenticated:
    def test_returns_caller_arn(self, store):
        with Stubber(store.sts) as stub:
            stub.add_response(
                "get_caller_identity",
                {"UserId": "AIDA", "Account": "123456789012", "Arn": "arn:aws:iam::123456789012:user/ops"},
            )
            assert store.check_authenticated() == "arn:aws:iam::123456789012:user/ops"

    def test_rejected_credentials(self, store):
        with Stubber(store.sts) as stub:
            stub.add_client_error("get_caller_identity", "InvalidClientTokenId", http_status_code=403)
            with pytest.raises(AuthenticationError):
                store.check_authenticated()


class TestPutSecretValue:
    def test_uploads_payload_json(self, store, payload):
        with Stubber(store.secretsmanager) as stub:
            stub.add_response(
                "put_secret_value",
                {"ARN": SECRET_ARN, "Name": SECRET_NAME, "VersionId": VERSION_A, "VersionStages": ["AWSCURRENT"]},
                {"SecretId": SECRET_NAME, "SecretString": payload.to_json()},
            )
            version_id, arn = store.put_secret_value(SECRET_NAME, payload)

        assert version_id == VERSION_A
        assert arn == SECRET_ARN

    def test_two_uploads_create_two_versions(self, store, payload):
        with Stubber(store.secretsmanager) as stub:
            for version in (VERSION_A, VERSION_B):
                stub.add_response(
                    "put_secret_value",
                    {"ARN": SECRET_ARN, "Name": SECRET_NAME, "VersionId": version},
                    {"SecretId": SECRET_NAME, "SecretString": ANY},
                )
            first, _ = store.put_secret_value(SECRET_NAME, payload)
            second, _ = store.put_secret_value(SECRET_NAME, payload)

        assert first != second

    def test_failure_is_not_retried(self, store, payload):
        with Stubber(store.secretsmanager) as stub:
            stub.add_client_error("put_secret_value", "ResourceNotFoundException", http_status_code=400)
            with pytest.raises(SecretStoreError, match="Failed to upload"):
                store.put_secret_value(SECRET_NAME, payload)
            stub.assert_no_pending_responses()


class TestGetSecretValue:
    def test_parses_current_version(self, store, payload):
        with Stubber(store.secretsmanager) as stub:
            stub.add_response(
                "get_secret_value",
                {"ARN": SECRET_ARN, "Name": SECRET_NAME, "SecretString": payload.to_json()},
                {"SecretId": SECRET_NAME, "VersionStage": "AWSCURRENT"},
            )
            assert store.get_secret_value(SECRET_NAME) == payload

    def test_placeholder_value(self, store):
        with Stubber(store.secretsmanager) as stub:
            stub.add_response(
                "get_secret_value",
                {"ARN": SECRET_ARN, "Name": SECRET_NAME, "SecretString": json.dumps({"placeholder": True})},
                {"SecretId": SECRET_NAME, "VersionStage": "AWSCURRENT"},
            )
            with pytest.raises(PayloadError, match="upload-key"):
                store.get_secret_value(SECRET_NAME)

    def test_missing_secret(self, store):
        with Stubber(store.secretsmanager) as stub:
            stub.add_client_error("get_secret_value", "ResourceNotFoundException", http_status_code=400)
            with pytest.raises(SecretStoreError):
                store.get_secret_value(SECRET_NAME)


def test_list_versions_newest_first(store):
    older = datetime(2026, 1, 1, tzinfo=timezone.utc)
    newer = datetime(2026, 2, 1, tzinfo=timezone.utc)
    with Stubber(store.secretsmanager) as stub:
        stub.add_response(
            "list_secret_version_ids",
            {
                "Versions": [
                    {"VersionId": VERSION_A, "VersionStages": ["AWSPREVIOUS"], "CreatedDate": older},
                    {"VersionId": VERSION_B, "VersionStages": ["AWSCURRENT"], "CreatedDate": newer},
                ],
                "ARN": SECRET_ARN,
                "Name": SECRET_NAME,
            },
            {"SecretId": SECRET_NAME, "IncludeDeprecated": True},
        )
        versions = store.list_versions(SECRET_NAME)

    assert [v[0] for v in versions] == [VERSION_B, VERSION_A]
    assert versions[0][1] == ["AWSCURRENT"]


class TestTransportErrors:
    ENDPOINT = "https://secretsmanager.us-east-1.amazonaws.com"

    def test_unreachable_sts(self, store):
        error = EndpointConnectionError(endpoint_url="https://sts.us-east-1.amazonaws.com")
        with patch.object(store.sts, "get_caller_identity", side_effect=error):
            with pytest.raises(AuthenticationError, match="Could not connect"):
                store.check_authenticated()

    def test_unreachable_upload(self, store, payload):
        error = EndpointConnectionError(endpoint_url=self.ENDPOINT)
        with patch.object(store.secretsmanager, "put_secret_value", side_effect=error) as put:
            with pytest.raises(SecretStoreError, match="Failed to upload"):
                store.put_secret_value(SECRET_NAME, payload)
        put.assert_called_once()

    def test_read_timeout(self, store):
        error = ReadTimeoutError(endpoint_url=self.ENDPOINT)
        with patch.object(store.secretsmanager, "get_secret_value", side_effect=error):
            with pytest.raises(SecretStoreError, match="Failed to read"):
                store.get_secret_value(SECRET_NAME)

    def test_unreachable_version_listing(self, store):
        error = EndpointConnectionError(endpoint_url=self.ENDPOINT)
        with patch.object(store.secretsmanager, "get_paginator", side_effect=error):
            with pytest.raises(SecretStoreError, match="Failed to list"):
                store.list_versions(SECRET_NAME)
