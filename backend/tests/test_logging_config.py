"""Tests for the secret-masking log processor."""

import pytest

from core.logging_config import REDACTED, SecretMasker


@pytest.mark.unit
class TestSecretMasker:
    def test_masks_secret_inside_strings(self):
        masker = SecretMasker(["https://hooks.example.com/in"])
        event = masker(None, "info", {"event": "POST https://hooks.example.com/in failed", "status": 500})
        assert event == {"event": f"POST {REDACTED} failed", "status": 500}

    def test_masks_nested_values(self):
        masker = SecretMasker(["s3cr3t"])
        event = masker(None, "info", {"event": "x", "details": {"urls": ["a", "s3cr3t"]}})
        assert event["details"] == {"urls": ["a", REDACTED]}

    def test_longer_secret_is_masked_whole(self):
        masker = SecretMasker(["abc", "abcdef"])
        assert masker(None, "info", {"event": "abcdef"})["event"] == REDACTED

    def test_blank_secrets_are_ignored(self):
        masker = SecretMasker(["", "   "])
        event = {"event": "nothing to hide"}
        assert masker(None, "info", event) is event
