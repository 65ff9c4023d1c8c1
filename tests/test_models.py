"""Tests for keyvault.models — the stored key payload."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from keyvault.models import KEY_TYPE, PAYLOAD_DESCRIPTION, PayloadError, SecretPayload

PAYLOAD_FIELDS = {"private_key", "public_key", "key_type", "created_at", "description"}


class TestSecretPayload:
    def test_build_sets_constants(self):
        payload = SecretPayload.build("PRIVATE", "PUBLIC")
        assert payload.key_type == "ed25519" == KEY_TYPE
        assert payload.description == PAYLOAD_DESCRIPTION

    def test_json_has_exactly_five_string_fields(self):
        data = json.loads(SecretPayload.build("PRIVATE", "PUBLIC").to_json())
        assert set(data) == PAYLOAD_FIELDS
        assert all(isinstance(v, str) for v in data.values())

    def test_multiline_private_key_survives_json(self):
        private = "-----BEGIN-----\nline\n-----END-----"
        data = json.loads(SecretPayload.build(private, "PUBLIC").to_json())
        assert data["private_key"] == private

    def test_created_at_is_utc_iso8601(self):
        before = datetime.now(timezone.utc).replace(microsecond=0)
        payload = SecretPayload.build("PRIVATE", "PUBLIC")
        created = payload.created_at_datetime()
        assert payload.created_at.endswith("Z")
        assert created >= before
        assert created <= datetime.now(timezone.utc)

    def test_created_at_converts_to_utc(self):
        local = datetime(2026, 3, 1, 12, 30, 0, tzinfo=timezone(timedelta(hours=2)))
        payload = SecretPayload.build("PRIVATE", "PUBLIC", now=local)
        assert payload.created_at == "2026-03-01T10:30:00Z"

    def test_from_json_round_trip(self):
        payload = SecretPayload.build("PRIVATE", "PUBLIC")
        assert SecretPayload.from_json(payload.to_json()) == payload


class TestSecretPayloadErrors:
    def test_invalid_json(self):
        with pytest.raises(PayloadError, match="not valid JSON"):
            SecretPayload.from_json("{nope")

    def test_not_an_object(self):
        with pytest.raises(PayloadError, match="not a JSON object"):
            SecretPayload.from_json("[1, 2]")

    def test_placeholder_is_rejected(self):
        with pytest.raises(PayloadError, match="private_key"):
            SecretPayload.from_json('{"placeholder": true}')

    def test_non_string_field(self):
        data = json.loads(SecretPayload.build("PRIVATE", "PUBLIC").to_json())
        data["public_key"] = 42
        with pytest.raises(PayloadError, match="public_key"):
            SecretPayload.from_json(json.dumps(data))

    def test_bad_timestamp(self):
        data = json.loads(SecretPayload.build("PRIVATE", "PUBLIC").to_json())
        data["created_at"] = "yesterday"
        with pytest.raises(PayloadError, match="created_at"):
            SecretPayload.from_json(json.dumps(data))
