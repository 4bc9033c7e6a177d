from __future__ import annotations

import pytest
from behaveguard.delivery.policies import OverflowPolicy, overflow_count


@pytest.mark.parametrize(
    ("policy", "pending", "max_pending", "expected"),
    [
        (OverflowPolicy.unbounded, 500, 10, 0),
        (OverflowPolicy.drop_oldest, 500, None, 0),
        (OverflowPolicy.drop_oldest, 9, 10, 0),
        (OverflowPolicy.drop_oldest, 10, 10, 1),
        (OverflowPolicy.drop_oldest, 12, 10, 3),
        (OverflowPolicy.reject_new, 9, 10, 0),
        (OverflowPolicy.reject_new, 10, 10, -1),
    ],
)
def test_overflow_count(
    policy: OverflowPolicy, pending: int, max_pending: int | None, expected: int
) -> None:
    assert overflow_count(policy, pending, max_pending) == expected
