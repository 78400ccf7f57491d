"""Provider configuration and the meta object handed to every handler."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

from .classify import DEFAULT_THROTTLE_CODES, Classifier
from .resource import Timeouts
from .tags import DEFAULT_SYSTEM_PREFIXES, DefaultTagsConfig, IgnoreTagsConfig


def _unblock(value: Any) -> Any:
    """HCL decodes a nested block as a one-element list of mappings."""
    if isinstance(value, list) and len(value) == 1 and isinstance(value[0], dict):
        return value[0]
    return value


class RetrySettings(BaseModel):
    """Error codes the provider's retry helpers treat as worth repeating."""

    timeout: float = Field(default=5 * 60.0, gt=0)
    not_found_codes: list[str] = Field(default_factory=list)
    throttle_codes: list[str] = Field(default_factory=lambda: sorted(DEFAULT_THROTTLE_CODES))
    transient_codes: list[str] = Field(default_factory=list)
    transient_messages: list[tuple[str, str]] = Field(default_factory=list)

    def classifier(self) -> Classifier:
        return Classifier(
            not_found_codes=self.not_found_codes,
            throttle_codes=self.throttle_codes,
            transient_codes=self.transient_codes,
            transient_messages=self.transient_messages,
        )


class ProviderConfig(BaseModel):
    """Settings from the ``provider`` block."""

    region: str = ""
    account_id: str = ""
    default_tags: DefaultTagsConfig = Field(default_factory=DefaultTagsConfig)
    ignore_tags: IgnoreTagsConfig = Field(default_factory=IgnoreTagsConfig)
    system_tag_prefixes: list[str] = Field(default_factory=lambda: list(DEFAULT_SYSTEM_PREFIXES))
    timeouts: Timeouts = Field(default_factory=Timeouts)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    dry_run: bool = False

    @field_validator("default_tags", "ignore_tags", "timeouts", "retry", mode="before")
    @classmethod
    def unwrap_blocks(cls, value: Any) -> Any:
        return _unblock(value)


class ProviderMeta(BaseModel):
    """Process-level state shared by all handlers: configuration plus client handles.

    Built once at startup and read-only afterwards.
    """

    model_config = {"arbitrary_types_allowed": True, "frozen": True}

    config: ProviderConfig = Field(default_factory=ProviderConfig)
    clients: dict[str, Any] = Field(default_factory=dict)

    def client(self, name: str) -> Any:
        if name not in self.clients:
            raise ValueError(f"No client configured for '{name}'")
        return self.clients[name]

    def classifier(self) -> Classifier:
        return self.config.retry.classifier()
