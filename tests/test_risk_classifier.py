"""Tests for threshold rules, scoring and tier mapping."""

from __future__ import annotations

import pytest
from behaveguard.config import RiskThresholds
from behaveguard.models.records import SessionRecord
from behaveguard.models.risk import RiskTier
from behaveguard.risk.classifier import MAX_SCORE, RiskClassifier, tier_for_score
from behaveguard.risk.rules import (
    HIGH_CORRECTIONS,
    HIGH_MOUSE_VELOCITY,
    LOW_FOCUS_TIME,
    RAPID_SCROLLING,
    UNUSUAL_TYPING_SPEED,
    RiskRule,
)

from tests.helpers import make_snapshot


def _nominal(**overrides: object) -> SessionRecord:
    fields: dict[str, object] = {
        "session_id": "s1",
        "typing_wpm": 60,
        "typing_keystrokes": 100,
        "typing_corrections": 5,
        "mouse_velocity": 300,
        "scroll_speed": 100,
        "focus_time": 60_000,
    }
    fields.update(overrides)
    return SessionRecord.model_validate(fields)


@pytest.fixture
def classifier() -> RiskClassifier:
    return RiskClassifier()


def test_nominal_session_is_low(classifier: RiskClassifier) -> None:
    assessment = classifier.classify(_nominal())
    assert assessment.score == 0
    assert assessment.factors == []
    assert assessment.tier == RiskTier.LOW


def test_fast_typing_and_fast_mouse_is_medium(classifier: RiskClassifier) -> None:
    assessment = classifier.classify(_nominal(typing_wpm=150, mouse_velocity=1200))

    assert assessment.score == 40
    assert assessment.factors == [UNUSUAL_TYPING_SPEED, HIGH_MOUSE_VELOCITY]
    assert assessment.tier == RiskTier.MEDIUM


@pytest.mark.parametrize(
    ("overrides", "label"),
    [
        ({"typing_wpm": 5}, UNUSUAL_TYPING_SPEED),
        ({"typing_wpm": 121}, UNUSUAL_TYPING_SPEED),
        ({"mouse_velocity": 1001}, HIGH_MOUSE_VELOCITY),
        ({"scroll_speed": 501}, RAPID_SCROLLING),
        ({"focus_time": 4999}, LOW_FOCUS_TIME),
        ({"typing_corrections": 31}, HIGH_CORRECTIONS),
    ],
)
def test_each_rule_contributes_one_factor(
    classifier: RiskClassifier, overrides: dict[str, object], label: str
) -> None:
    assessment = classifier.classify(_nominal(**overrides))
    assert assessment.factors == [label]
    assert assessment.score == 20


@pytest.mark.parametrize(
    "overrides",
    [
        {"typing_wpm": 120},
        {"typing_wpm": 10},
        {"mouse_velocity": 1000},
        {"scroll_speed": 500},
        {"focus_time": 5000},
        {"typing_corrections": 30},
    ],
)
def test_thresholds_are_exclusive(classifier: RiskClassifier, overrides: dict[str, object]) -> None:
    assert classifier.classify(_nominal(**overrides)).score == 0


def test_adding_a_factor_never_lowers_score(classifier: RiskClassifier) -> None:
    base = classifier.classify(_nominal(mouse_velocity=1500))
    more = classifier.classify(_nominal(mouse_velocity=1500, scroll_speed=900))

    assert more.score >= base.score
    assert set(base.factors) < set(more.factors)


def test_all_factors_caps_at_maximum(classifier: RiskClassifier) -> None:
    assessment = classifier.classify(
        _nominal(
            typing_wpm=200,
            typing_corrections=90,
            mouse_velocity=5000,
            scroll_speed=5000,
            focus_time=0,
        )
    )
    assert len(assessment.factors) == 5
    assert assessment.score == MAX_SCORE
    assert assessment.tier == RiskTier.HIGH


@pytest.mark.parametrize(
    ("score", "tier"),
    [(0, RiskTier.LOW), (39, RiskTier.LOW), (40, RiskTier.MEDIUM), (69, RiskTier.MEDIUM),
     (70, RiskTier.HIGH), (100, RiskTier.HIGH)],
)
def test_tier_boundaries(score: int, tier: RiskTier) -> None:
    assert tier_for_score(score) == tier


def test_custom_thresholds() -> None:
    classifier = RiskClassifier(RiskThresholds(mouse_velocity_max=200, points_per_factor=35))
    assessment = classifier.classify(_nominal())

    assert assessment.factors == [HIGH_MOUSE_VELOCITY]
    assert assessment.score == 35
    assert assessment.tier == RiskTier.LOW


def test_custom_rules_replace_defaults() -> None:
    classifier = RiskClassifier(rules=[RiskRule("Many searches", lambda r: r.searches > 10)])
    assessment = classifier.classify(_nominal(searches=11, focus_time=0))

    assert assessment.factors == ["Many searches"]
    assert [rule.label for rule in classifier.rules] == ["Many searches"]


def test_classifies_snapshots_directly(classifier: RiskClassifier) -> None:
    assessment = classifier.classify(make_snapshot("snap", wpm=150, velocity=1200))

    assert assessment.session_id == "snap"
    assert assessment.score == 40


def test_classify_many_preserves_order(classifier: RiskClassifier) -> None:
    records = [_nominal(session_id="a"), _nominal(session_id="b", focus_time=0)]
    assessments = classifier.classify_many(records)

    assert [a.session_id for a in assessments] == ["a", "b"]
    assert [a.score for a in assessments] == [0, 20]
