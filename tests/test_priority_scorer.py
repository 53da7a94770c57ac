"""Priority scoring tests.

Covers: band boundaries at each threshold, clamping, purity, factor
derivation from type / deadline / role / metadata, ordering helpers.
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from beacon.models.enums import NotificationPriority, NotificationType
from beacon.models.notification import PriorityScoreFactors
from beacon.services import priority_scorer
from beacon.services.priority_scorer import factors_for, priority_for_score, score

NOW = datetime(2025, 3, 12, 10, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "total,expected",
    [
        (100, NotificationPriority.CRITICAL),
        (90, NotificationPriority.CRITICAL),
        (89, NotificationPriority.URGENT),
        (70, NotificationPriority.URGENT),
        (69, NotificationPriority.HIGH),
        (45, NotificationPriority.HIGH),
        (44, NotificationPriority.NORMAL),
        (20, NotificationPriority.NORMAL),
        (19, NotificationPriority.LOW),
        (0, NotificationPriority.LOW),
    ],
)
def test_band_boundaries(total, expected):
    assert priority_for_score(total) == expected
    assert score(PriorityScoreFactors(base_type_score=total)).priority == expected


def test_deadline_role_bonus_reaches_critical():
    result = score(PriorityScoreFactors(base_type_score=60, deadline_modifier=20, role_modifier=10))
    assert result.total == 90
    assert result.priority == NotificationPriority.CRITICAL


def test_total_clamped_to_range():
    high = score(PriorityScoreFactors(base_type_score=90, critical_flag=25, legal_compliance=20))
    assert high.total == 100
    low = score(PriorityScoreFactors(base_type_score=-30))
    assert low.total == 0
    assert low.priority == NotificationPriority.LOW


def test_score_is_pure():
    factors = PriorityScoreFactors(base_type_score=40, deadline_modifier=25, role_modifier=5)
    results = {score(factors) for _ in range(5)}
    assert len(results) == 1


def test_factors_are_immutable():
    factors = PriorityScoreFactors(base_type_score=40)
    with pytest.raises(ValidationError):
        factors.base_type_score = 99


@pytest.mark.parametrize(
    "hours,expected",
    [(-1, 40), (0.5, 35), (3, 30), (12, 25), (48, 20), (100, 10), (200, 5), (400, 0)],
)
def test_deadline_modifier_steps(hours, expected):
    assert priority_scorer.deadline_modifier(NOW + timedelta(hours=hours), NOW) == expected


def test_no_deadline_no_modifier():
    assert priority_scorer.deadline_modifier(None, NOW) == 0


def test_naive_deadline_treated_as_utc():
    naive = (NOW + timedelta(hours=3)).replace(tzinfo=None)
    assert priority_scorer.deadline_modifier(naive, NOW) == 30


def test_factors_for_combines_sources():
    factors = factors_for(
        NotificationType.DEADLINE,
        now=NOW,
        deadline=NOW + timedelta(hours=12),
        role="hr",
        metadata={"is_urgent": True, "compliance_required": True},
    )
    assert factors == PriorityScoreFactors(
        base_type_score=60,
        deadline_modifier=25,
        role_modifier=8,
        critical_flag=15,
        legal_compliance=15,
    )
    assert score(factors).total == 100


def test_flags_require_literal_true():
    assert priority_scorer.critical_flag({"is_critical": "yes"}) == 0
    assert priority_scorer.legal_compliance({"wet_poortwachter": True}) == 20


def test_unknown_role_has_no_modifier():
    assert priority_scorer.role_modifier("contractor") == 0
    assert priority_scorer.role_modifier(None) == 0


class _Item:
    def __init__(self, name, priority_score, priority):
        self.name = name
        self.priority_score = priority_score
        self.priority = priority


def test_sort_and_group_by_priority():
    items = [
        _Item("a", 30, "normal"),
        _Item("b", 95, "critical"),
        _Item("c", 30, "normal"),
        _Item("d", 50, "high"),
    ]
    assert [i.name for i in priority_scorer.sort_by_priority(items)] == ["b", "d", "a", "c"]
    groups = priority_scorer.group_by_priority(items)
    assert [i.name for i in groups[NotificationPriority.NORMAL]] == ["a", "c"]
    assert groups[NotificationPriority.URGENT] == []


def test_fatigue_drives_batching_recommendation():
    assert priority_scorer.fatigue_score(2) == 10
    assert priority_scorer.recommend_batching(10)["should_batch"] is False
    assert priority_scorer.fatigue_score(20) == 100
    assert priority_scorer.recommend_batching(100) == {
        "should_batch": True,
        "batch_delay_minutes": 60,
        "max_batch_size": 10,
    }
