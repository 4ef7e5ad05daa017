"""
Pydantic v2 schemas for notification payloads.

Every payload written to ``notifications.data_json`` goes through one of
these models so the keys (``caseId``, ``bidCount``, ...) stay camelCase
for the mobile and web clients that read them.
"""

from __future__ import annotations

import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_data(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class NewCasePayload(_Payload):
    case_id: uuid.UUID
    category: str
    location: str
    budget: Optional[float] = None
    priority: Optional[str] = None


class CaseAssignedPayload(_Payload):
    case_id: uuid.UUID
    provider_id: uuid.UUID
    auto_assigned: bool = True
    score: Optional[float] = None


class BidSelectionReminderPayload(_Payload):
    case_id: uuid.UUID
    bid_count: int


class PointsLowPayload(_Payload):
    points_balance: int
    threshold: int
    action: str = "top_up"
