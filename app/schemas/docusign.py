"""DocuSign Connect webhook payloads.

DocuSign delivers envelope events in two shapes depending on how the Connect
configuration was created:

* event envelope: ``{"event": ..., "data": {"envelopeId": ..., "envelopeSummary": {...}}}``
* flat envelope: ``{"envelopeId": ..., "status": ..., "completedDateTime": ...}``

Both decode into the same :class:`EnvelopeEvent`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


class PayloadShape(str, Enum):
    EVENT_ENVELOPE = "event_envelope"
    FLAT_ENVELOPE = "flat_envelope"


@dataclass(frozen=True, slots=True)
class EnvelopeEvent:
    envelope_id: str
    status: str
    completed_at: datetime | None = None
    status_changed_at: datetime | None = None
    custom_fields: Mapping[str, str] = field(default_factory=dict)
    shape: PayloadShape = field(default=PayloadShape.FLAT_ENVELOPE, compare=False)


def parse_provider_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    normalized = trimmed[:-1] + "+00:00" if trimmed.endswith("Z") else trimmed
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        logger.warning("Ignoring unparseable DocuSign timestamp %r", value)
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def flatten_custom_fields(value: Any) -> dict[str, str]:
    """Collapse DocuSign custom fields into a ``{name: value}`` mapping.

    Accepts either a plain mapping or the native Connect structure with
    ``textCustomFields`` / ``listCustomFields`` lists of ``{name, value}``.
    """
    if not value:
        return {}
    if not isinstance(value, Mapping):
        return {}

    native_keys = {"textCustomFields", "listCustomFields"}
    if native_keys & set(value):
        flattened: dict[str, str] = {}
        for key in ("textCustomFields", "listCustomFields"):
            for item in value.get(key) or []:
                if not isinstance(item, Mapping):
                    continue
                name = item.get("name")
                item_value = item.get("value")
                if name and item_value is not None:
                    flattened[str(name)] = str(item_value)
        return flattened

    return {str(key): str(item) for key, item in value.items() if item is not None}


class _ProviderModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )


class EnvelopeSummary(_ProviderModel):
    status: str | None = None
    completed_date_time: str | None = None
    status_changed_date_time: str | None = None
    custom_fields: dict[str, str] = Field(default_factory=dict)

    @field_validator("custom_fields", mode="before")
    @classmethod
    def _flatten(cls, value: Any) -> dict[str, str]:
        return flatten_custom_fields(value)


class EnvelopeEventData(_ProviderModel):
    envelope_id: str
    status: str | None = None
    envelope_summary: EnvelopeSummary | None = None
    custom_fields: dict[str, str] = Field(default_factory=dict)

    @field_validator("custom_fields", mode="before")
    @classmethod
    def _flatten(cls, value: Any) -> dict[str, str]:
        return flatten_custom_fields(value)


class EnvelopeEventPayload(_ProviderModel):
    """Event envelope shape: the envelope lives under ``data``."""

    event: str | None = None
    data: EnvelopeEventData

    def to_event(self) -> EnvelopeEvent:
        summary = self.data.envelope_summary or EnvelopeSummary()
        custom_fields = {**summary.custom_fields, **self.data.custom_fields}
        return EnvelopeEvent(
            envelope_id=self.data.envelope_id.strip(),
            status=(summary.status or self.data.status or "").strip(),
            completed_at=parse_provider_timestamp(summary.completed_date_time),
            status_changed_at=parse_provider_timestamp(summary.status_changed_date_time),
            custom_fields=custom_fields,
            shape=PayloadShape.EVENT_ENVELOPE,
        )


class FlatEnvelopePayload(_ProviderModel):
    """Flat shape: envelope fields at the top level."""

    envelope_id: str
    status: str | None = None
    envelope_status: str | None = None
    completed_date_time: str | None = None
    status_changed_date_time: str | None = None
    custom_fields: dict[str, str] = Field(default_factory=dict)

    @field_validator("custom_fields", mode="before")
    @classmethod
    def _flatten(cls, value: Any) -> dict[str, str]:
        return flatten_custom_fields(value)

    def to_event(self) -> EnvelopeEvent:
        return EnvelopeEvent(
            envelope_id=self.envelope_id.strip(),
            status=(self.status or self.envelope_status or "").strip(),
            completed_at=parse_provider_timestamp(self.completed_date_time),
            status_changed_at=parse_provider_timestamp(self.status_changed_date_time),
            custom_fields=dict(self.custom_fields),
            shape=PayloadShape.FLAT_ENVELOPE,
        )


class WebhookAck(_ProviderModel):
    success: bool = True
    message: str = "Webhook processed successfully"
    loan_id: str
    docusign_status: str
    loan_status: str
    timestamp: datetime
