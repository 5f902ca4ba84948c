"""Per-type shape checks for the opaque `ticket_data` document.

The store never looks inside ticket_data on its own. A caller that wants
shape validation passes a mapping of ticket type → pydantic model; the
document is checked against the model and stored exactly as given, so
key order and unknown keys survive.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ticketdesk.models.enums import TicketType
from ticketdesk.tickets.errors import PreconditionFailedError

PayloadModels = Mapping[TicketType, type[BaseModel]]

_TIME_RE = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")


class _Payload(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class CustomVideoData(_Payload):
    video_type: str = Field(alias="videoType", min_length=1)
    duration: int | None = Field(default=None, gt=0)
    special_instructions: str | None = Field(default=None, alias="specialInstructions", max_length=2000)
    deadline: datetime | None = None
    budget: float | None = Field(default=None, gt=0)
    platform: str | None = None


class VideoCallData(_Payload):
    preferred_date: str = Field(alias="preferredDate", pattern=r"^\d{4}-\d{2}-\d{2}$")
    preferred_time: str = Field(alias="preferredTime")
    duration: int = Field(default=30, gt=0)
    platform: str = Field(min_length=1)
    notes: str | None = Field(default=None, max_length=1000)

    @field_validator("preferred_time")
    @classmethod
    def check_time(cls, v: str) -> str:
        if not _TIME_RE.match(v):
            msg = "Time must be HH:mm format"
            raise ValueError(msg)
        return v


class ContentRequestData(_Payload):
    content_type: str = Field(alias="contentType", min_length=1)
    quantity: int = Field(default=1, gt=0)
    deadline: datetime | None = None
    specifications: str | None = Field(default=None, max_length=2000)


class GeneralInquiryData(_Payload):
    category: str | None = None
    urgency: str | None = None


class UrgentAlertData(_Payload):
    alert_type: str = Field(alias="alertType", min_length=1)
    requires_immediate_action: bool = Field(default=True, alias="requiresImmediateAction")


DEFAULT_PAYLOAD_MODELS: dict[TicketType, type[BaseModel]] = {
    TicketType.CUSTOM_VIDEO: CustomVideoData,
    TicketType.VIDEO_CALL: VideoCallData,
    TicketType.CONTENT_REQUEST: ContentRequestData,
    TicketType.GENERAL_INQUIRY: GeneralInquiryData,
    TicketType.URGENT_ALERT: UrgentAlertData,
}


def check_payload(models: PayloadModels | None, ticket_type: TicketType, data: dict[str, Any]) -> dict[str, Any]:
    """Validate `data` against the model registered for `ticket_type`.

    Returns `data` unchanged; raises PreconditionFailedError listing the
    offending fields.
    """
    if not models:
        return data
    model = models.get(ticket_type)
    if model is None:
        return data
    try:
        model.model_validate(data)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
        msg = f"Invalid {ticket_type.value} ticket data: {fields}"
        raise PreconditionFailedError(msg) from exc
    return data
