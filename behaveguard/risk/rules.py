"""Threshold rules for behavioral risk factors.

Each rule is an independent predicate paired with the factor label it
contributes. Rules never look at each other, so the rule list can grow or
shrink without touching the scoring code.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from behaveguard.config import RiskThresholds
from behaveguard.models.records import SessionRecord

UNUSUAL_TYPING_SPEED = "Unusual typing speed"
HIGH_MOUSE_VELOCITY = "High mouse velocity"
RAPID_SCROLLING = "Rapid scrolling"
LOW_FOCUS_TIME = "Low focus time"
HIGH_CORRECTIONS = "High corrections"


@dataclass(frozen=True, slots=True)
class RiskRule:
    label: str
    predicate: Callable[[SessionRecord], bool]

    def triggered(self, record: SessionRecord) -> bool:
        return self.predicate(record)


def build_default_rules(thresholds: RiskThresholds | None = None) -> list[RiskRule]:
    t = thresholds or RiskThresholds()
    return [
        RiskRule(
            UNUSUAL_TYPING_SPEED,
            lambda r: r.typing_wpm > t.typing_wpm_max or r.typing_wpm < t.typing_wpm_min,
        ),
        RiskRule(HIGH_MOUSE_VELOCITY, lambda r: r.mouse_velocity > t.mouse_velocity_max),
        RiskRule(RAPID_SCROLLING, lambda r: r.scroll_speed > t.scroll_speed_max),
        RiskRule(LOW_FOCUS_TIME, lambda r: r.focus_time < t.focus_time_min_ms),
        RiskRule(
            HIGH_CORRECTIONS,
            lambda r: r.typing_corrections > t.correction_ratio_max * r.typing_keystrokes,
        ),
    ]


DEFAULT_RULES: tuple[RiskRule, ...] = tuple(build_default_rules())


__all__ = [
    "DEFAULT_RULES",
    "HIGH_CORRECTIONS",
    "HIGH_MOUSE_VELOCITY",
    "LOW_FOCUS_TIME",
    "RAPID_SCROLLING",
    "UNUSUAL_TYPING_SPEED",
    "RiskRule",
    "build_default_rules",
]
