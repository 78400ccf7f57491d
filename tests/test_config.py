"""Tests for skyform.config."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from skyform.classify import ErrorClass
from skyform.config import ProviderConfig, ProviderMeta, RetrySettings
from skyform.errors import CloudError


class TestProviderConfig:
    def test_defaults(self):
        config = ProviderConfig()
        assert config.system_tag_prefixes == ["aws:"]
        assert config.default_tags.tags == {}
        assert config.timeouts.get("create") == 20 * 60.0
        assert config.dry_run is False

    def test_hcl_block_lists_unwrapped(self):
        config = ProviderConfig.model_validate(
            {
                "region": "eu-test-1",
                "default_tags": [{"tags": {"env": "prod"}}],
                "ignore_tags": [{"key_prefixes": ["sys:"]}],
                "timeouts": [{"create": 60}],
                "retry": [{"timeout": 30, "transient_codes": ["Busy"]}],
            }
        )
        assert config.default_tags.tags == {"env": "prod"}
        assert config.ignore_tags.is_ignored("sys:owner")
        assert config.timeouts.get("create") == 60
        assert config.retry.timeout == 30

    def test_invalid_timeout(self):
        with pytest.raises(ValidationError):
            ProviderConfig(timeouts={"delete": -1})


class TestRetrySettings:
    def test_classifier(self):
        classifier = RetrySettings(
            not_found_codes=["NoSuchWidget"],
            transient_codes=["Busy"],
            transient_messages=[("InvalidParameter", "still propagating")],
        ).classifier()
        assert classifier.classify(CloudError("NoSuchWidget")) is ErrorClass.NOT_FOUND
        assert classifier.classify(CloudError("Busy")) is ErrorClass.TRANSIENT
        assert classifier.classify(CloudError("Throttling")) is ErrorClass.THROTTLED
        assert (
            classifier.classify(CloudError("InvalidParameter", "role still propagating"))
            is ErrorClass.TRANSIENT
        )
        assert classifier.classify(CloudError("AccessDenied")) is ErrorClass.NON_RETRYABLE


class TestProviderMeta:
    def test_client_lookup(self):
        meta = ProviderMeta(clients={"widgets": object()})
        assert meta.client("widgets") is meta.clients["widgets"]
        with pytest.raises(ValueError, match="No client configured for 'gadgets'"):
            meta.client("gadgets")

    def test_frozen(self):
        meta = ProviderMeta()
        with pytest.raises(ValidationError):
            meta.config = ProviderConfig()
