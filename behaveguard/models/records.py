"""Session-keyed storage rows and their reconciled form."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field, field_validator

from behaveguard.models.snapshot import MetricSnapshot

ProductId = int | str


class SessionRecord(BaseModel):
    """One row of the behavioral table or of the activity table.

    Behavioral rows are flattened snapshots and leave the activity counters
    at zero; activity rows carry only the counters and product views. Every
    numeric column defaults to zero so partial rows from either table
    validate.
    """

    session_id: str = Field(min_length=1)

    typing_wpm: float = Field(default=0, ge=0)
    typing_keystrokes: int = Field(default=0, ge=0)
    typing_corrections: int = Field(default=0, ge=0)

    mouse_clicks: int = Field(default=0, ge=0)
    mouse_movements: int = Field(default=0, ge=0)
    mouse_velocity: float = Field(default=0, ge=0)
    mouse_idle_time: float = Field(default=0, ge=0)

    scroll_depth: float = Field(default=0, ge=0, le=100)
    scroll_speed: float = Field(default=0, ge=0)
    scroll_events: int = Field(default=0, ge=0)

    focus_changes: int = Field(default=0, ge=0)
    focus_time: float = Field(default=0, ge=0)
    tab_switches: int = Field(default=0, ge=0)

    session_duration: float = Field(default=0, ge=0)
    page_views: int = Field(default=0, ge=0)
    interactions_count: int = Field(default=0, ge=0)
    page_url: str | None = None
    user_agent: str | None = None

    cart_actions: int = Field(default=0, ge=0)
    wishlist_actions: int = Field(default=0, ge=0)
    category_changes: int = Field(default=0, ge=0)
    searches: int = Field(default=0, ge=0)
    product_views: list[ProductId] = Field(default_factory=list)

    created_at: datetime | None = None

    @field_validator(
        "typing_wpm",
        "typing_keystrokes",
        "typing_corrections",
        "mouse_clicks",
        "mouse_movements",
        "mouse_velocity",
        "mouse_idle_time",
        "scroll_depth",
        "scroll_speed",
        "scroll_events",
        "focus_changes",
        "focus_time",
        "tab_switches",
        "session_duration",
        "page_views",
        "interactions_count",
        "cart_actions",
        "wishlist_actions",
        "category_changes",
        "searches",
        mode="before",
    )
    @classmethod
    def _null_is_zero(cls, value: object) -> object:
        return 0 if value is None else value

    @field_validator("product_views", mode="before")
    @classmethod
    def _null_is_empty(cls, value: object) -> object:
        return [] if value is None else value

    @field_validator("created_at", mode="before")
    @classmethod
    def _lenient_timestamp(cls, value: object) -> datetime | None:
        return parse_timestamp(value)

    @classmethod
    def from_snapshot(cls, snapshot: MetricSnapshot) -> SessionRecord:
        """Flatten a snapshot into the behavioral table's row shape."""
        typing, mouse = snapshot.typing, snapshot.mouse
        scroll, focus = snapshot.scroll, snapshot.focus
        return cls(
            session_id=snapshot.session_id,
            typing_wpm=typing.words_per_minute,
            typing_keystrokes=typing.keystroke_count,
            typing_corrections=typing.correction_count,
            mouse_clicks=mouse.click_count,
            mouse_movements=round(mouse.total_distance_pixels),
            mouse_velocity=mouse.average_speed_pixels_per_second,
            mouse_idle_time=mouse.idle_time_ms,
            scroll_depth=scroll.max_depth_percent,
            scroll_speed=scroll.scroll_speed_pixels_per_second,
            scroll_events=round(scroll.total_scroll_distance_pixels / 100),
            focus_changes=focus.focus_event_count,
            focus_time=focus.total_focus_time_ms,
            tab_switches=focus.tab_switch_count,
            session_duration=snapshot.session_duration_ms,
            page_views=1,
            interactions_count=mouse.click_count + typing.keystroke_count,
            page_url=snapshot.page_url or None,
            user_agent=snapshot.user_agent or None,
            created_at=snapshot.created_at,
        )


class ReconciledRecord(SessionRecord):
    """One authoritative record per session, rebuilt on every reconciliation pass."""

    source_count: int = Field(default=1, ge=1)


def parse_timestamp(value: object) -> datetime | None:
    """Coerce a stored timestamp into an aware datetime, or ``None`` if unusable.

    Accepts datetimes, ISO-8601 strings and epoch milliseconds (the browser's
    ``Date.now()``). Naive values are assumed to be UTC.
    """
    if value is None or isinstance(value, bool):
        return None
    parsed: datetime
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, int | float):
        try:
            parsed = datetime.fromtimestamp(value / 1000, UTC)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


__all__ = ["ProductId", "ReconciledRecord", "SessionRecord", "parse_timestamp"]
