"""Shared test helpers."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from behaveguard.models.snapshot import (
    FocusMetrics,
    MetricSnapshot,
    MouseMetrics,
    ScrollMetrics,
    TypingMetrics,
)

BASE_TIME = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)


async def wait_until(
    predicate: Callable[[], bool | Awaitable[bool]],
    timeout: float = 3.0,
    interval: float = 0.01,
) -> None:
    """Poll a condition until it passes or timeout is reached.

    Supports both sync and async predicates.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        result = predicate()
        if inspect.isawaitable(result):
            result = await result
        if result:
            return
        await asyncio.sleep(interval)
    raise TimeoutError("Condition not met within timeout")


def make_snapshot(
    session_id: str = "sess-1",
    *,
    wpm: float = 60,
    keystrokes: int = 100,
    corrections: int = 5,
    clicks: int = 4,
    velocity: float = 300,
    scroll_speed: float = 100,
    focus_time_ms: float = 60_000,
    created_at: datetime = BASE_TIME,
) -> MetricSnapshot:
    """A snapshot with nominal behavior unless overridden."""
    return MetricSnapshot(
        session_id=session_id,
        typing=TypingMetrics(
            words_per_minute=wpm,
            keystroke_count=keystrokes,
            correction_count=corrections,
            accuracy_percent=95,
        ),
        mouse=MouseMetrics(
            click_count=clicks,
            total_distance_pixels=2400,
            average_speed_pixels_per_second=velocity,
            idle_time_ms=1500,
        ),
        scroll=ScrollMetrics(
            max_depth_percent=60,
            current_depth_percent=40,
            total_scroll_distance_pixels=1250,
            scroll_speed_pixels_per_second=scroll_speed,
        ),
        focus=FocusMetrics(
            focus_event_count=2,
            blur_event_count=1,
            total_focus_time_ms=focus_time_ms,
            tab_switch_count=1,
        ),
        session_duration_ms=90_000,
        page_url="https://shop.example/products/7",
        user_agent="Mozilla/5.0",
        created_at=created_at,
    )
