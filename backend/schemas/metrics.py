from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from backend.errors import ValidationFailed


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _strip(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


class AggregateFunction(str, Enum):
    AVG = "avg"
    SUM = "sum"
    MIN = "min"
    MAX = "max"

    @classmethod
    def parse(cls, value: Any) -> "AggregateFunction":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        allowed = ", ".join(member.value for member in cls)
        raise ValueError(f"unknown aggregate function {value!r}; expected one of: {allowed}")


class AggregationRequest(BaseModel):
    fn: AggregateFunction
    metric_type: str = Field(..., min_length=1, max_length=64)

    model_config = ConfigDict(frozen=True)

    @field_validator("fn", mode="before")
    @classmethod
    def _parse_fn(cls, value: Any) -> AggregateFunction:
        return AggregateFunction.parse(value)

    @field_validator("metric_type", mode="before")
    @classmethod
    def _strip_metric_type(cls, value: Any) -> Any:
        return _strip(value)


class MetricFilters(BaseModel):
    """Optional, conjunctive filters; a missing field places no constraint."""

    measured_from: Optional[datetime] = Field(None, alias="from")
    measured_to: Optional[datetime] = Field(None, alias="to")
    unit: Optional[str] = Field(None, min_length=1, max_length=32)
    metric_type: Optional[str] = Field(None, min_length=1, max_length=64)

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("measured_from", "measured_to")
    @classmethod
    def _to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

    @field_validator("unit", "metric_type", mode="before")
    @classmethod
    def _blank_is_absent(cls, value: Any) -> Any:
        value = _strip(value)
        return value or None

    @model_validator(mode="after")
    def _window_is_ordered(self) -> "MetricFilters":
        if self.measured_from and self.measured_to and self.measured_from > self.measured_to:
            raise ValueError("'from' must not be later than 'to'")
        return self


class MetricCreate(BaseModel):
    device_id: int = Field(..., ge=1)
    metric_type: str = Field(..., min_length=1, max_length=64)
    metric_value: float = Field(..., allow_inf_nan=False)
    unit: str = Field(..., min_length=1, max_length=32)
    measured_at: Optional[datetime] = None

    @field_validator("metric_type", "unit", mode="before")
    @classmethod
    def _strip_text(cls, value: Any) -> Any:
        return _strip(value)

    @field_validator("measured_at")
    @classmethod
    def _measured_at_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)


class MetricOut(BaseModel):
    id: int
    device_id: int
    metric_type: str
    metric_value: float
    unit: str
    measured_at: datetime
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_validator("measured_at", "created_at")
    @classmethod
    def _utc(cls, value: datetime) -> Optional[datetime]:
        return ensure_utc(value)


class AggregatedMetricOut(BaseModel):
    aggregate: AggregateFunction
    metric_type: str
    unit: str
    metric_value: float


def _aggregation_error(index: int, field: str, msg: str, value: Any) -> ValidationFailed:
    return ValidationFailed.for_field(["query", "aggregate", index, field], msg, value)


def parse_aggregate_params(values: Sequence[str]) -> List[AggregationRequest]:
    """Parse ``aggregate`` query values.

    Each value is either ``fn:metric_type`` or a JSON array of
    ``{"fn": ..., "metric_type": ...}`` objects. Order is preserved across
    values and within arrays. Errors name the offending entry and value.
    """
    raw_entries: List[Any] = []
    for value in values:
        text = value.strip()
        if not text:
            continue
        if text.startswith("["):
            try:
                decoded = json.loads(text)
            except json.JSONDecodeError as exc:
                raise ValidationFailed.for_field(
                    ["query", "aggregate"], "aggregate is not valid JSON", text
                ) from exc
            if not isinstance(decoded, list):
                raise ValidationFailed.for_field(["query", "aggregate"], "aggregate must be a list", text)
            raw_entries.extend(decoded)
        else:
            fn, sep, metric_type = text.partition(":")
            if not sep:
                raise ValidationFailed.for_field(
                    ["query", "aggregate"], "expected 'fn:metric_type'", text
                )
            raw_entries.append({"fn": fn, "metric_type": metric_type})

    requests: List[AggregationRequest] = []
    for index, entry in enumerate(raw_entries):
        if not isinstance(entry, dict):
            raise _aggregation_error(index, "fn", "aggregation must be an object", entry)
        try:
            AggregateFunction.parse(entry.get("fn"))
        except ValueError as exc:
            raise _aggregation_error(index, "fn", str(exc), entry.get("fn")) from exc
        try:
            requests.append(AggregationRequest.model_validate(entry))
        except ValidationError as exc:
            first = exc.errors()[0]
            field = str(first["loc"][0]) if first.get("loc") else "metric_type"
            raise _aggregation_error(index, field, first["msg"], entry.get(field)) from exc
    return requests
