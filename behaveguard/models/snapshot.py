"""Behavioral snapshot contracts produced by the capture layer.

One ``MetricSnapshot`` is emitted per session per tick. Field names follow
Python conventions; the camelCase aliases are the wire format the browser
capture layer speaks, so snapshots round-trip through the collection
endpoint unchanged.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(UTC)


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, value: object) -> object:
        # The capture layer sends null for metrics it never observed; those
        # fall back to the field defaults (zero) instead of failing validation.
        if isinstance(value, dict):
            return {key: item for key, item in value.items() if item is not None}
        return value


class TypingMetrics(_WireModel):
    words_per_minute: float = Field(default=0, ge=0)
    keystroke_count: int = Field(default=0, ge=0)
    # Backspaces.
    correction_count: int = Field(default=0, ge=0)
    accuracy_percent: float = Field(default=0, ge=0, le=100)


class MouseMetrics(_WireModel):
    click_count: int = Field(default=0, ge=0)
    total_distance_pixels: float = Field(default=0, ge=0)
    average_speed_pixels_per_second: float = Field(default=0, ge=0)
    idle_time_ms: float = Field(default=0, ge=0)


class ScrollMetrics(_WireModel):
    max_depth_percent: float = Field(default=0, ge=0, le=100)
    current_depth_percent: float = Field(default=0, ge=0, le=100)
    total_scroll_distance_pixels: float = Field(default=0, ge=0)
    scroll_speed_pixels_per_second: float = Field(default=0, ge=0)


class FocusMetrics(_WireModel):
    focus_event_count: int = Field(default=0, ge=0)
    blur_event_count: int = Field(default=0, ge=0)
    total_focus_time_ms: float = Field(default=0, ge=0)
    tab_switch_count: int = Field(default=0, ge=0)


class MetricSnapshot(_WireModel):
    """One timed aggregation of behavioral metrics for a session."""

    session_id: str = Field(min_length=1)
    typing: TypingMetrics = Field(default_factory=TypingMetrics)
    mouse: MouseMetrics = Field(default_factory=MouseMetrics)
    scroll: ScrollMetrics = Field(default_factory=ScrollMetrics)
    focus: FocusMetrics = Field(default_factory=FocusMetrics)
    session_duration_ms: float = Field(default=0, ge=0)
    page_url: str = ""
    user_agent: str = ""
    created_at: datetime = Field(default_factory=utc_now)

    def to_wire(self) -> dict[str, object]:
        """Serialize with camelCase keys for the delivery transport."""
        return self.model_dump(mode="json", by_alias=True)


__all__ = [
    "FocusMetrics",
    "MetricSnapshot",
    "MouseMetrics",
    "ScrollMetrics",
    "TypingMetrics",
    "utc_now",
]
