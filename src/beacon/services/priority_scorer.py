"""Notification priority scoring.

``score`` is a pure function of its factors: the same
``PriorityScoreFactors`` always yield the same total and band, so a
re-triggered notification re-evaluates to an identical priority.
``factors_for`` derives the factors from a notification's type, deadline,
recipient role and metadata flags.
"""

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any, TypeVar

from beacon.models.enums import PRIORITY_ORDER, NotificationPriority, NotificationType
from beacon.models.notification import PriorityScore, PriorityScoreFactors
from beacon.services.clock import hours_between

SCORE_MIN = 0
SCORE_MAX = 100

# Inclusive lower bound of each band, highest first
PRIORITY_THRESHOLDS: tuple[tuple[int, NotificationPriority], ...] = (
    (90, NotificationPriority.CRITICAL),
    (70, NotificationPriority.URGENT),
    (45, NotificationPriority.HIGH),
    (20, NotificationPriority.NORMAL),
)

BASE_TYPE_SCORES: dict[NotificationType, int] = {
    NotificationType.ESCALATION: 90,
    NotificationType.APPROVAL: 70,
    NotificationType.DEADLINE: 60,
    NotificationType.REMINDER: 40,
    NotificationType.UPDATE: 30,
    NotificationType.DIGEST: 20,
}
DEFAULT_TYPE_SCORE = 50

ROLE_MODIFIERS: dict[str, int] = {
    "super_admin": 10,
    "hr": 8,
    "manager": 5,
    "medewerker": 0,
}

# (hours-until-deadline upper bound, modifier); overdue handled separately
DEADLINE_STEPS: tuple[tuple[float, int], ...] = (
    (1, 35),
    (6, 30),
    (24, 25),
    (72, 20),
    (168, 10),
    (336, 5),
)
OVERDUE_MODIFIER = 40


def score(factors: PriorityScoreFactors) -> PriorityScore:
    """Sum the factors, clamp to [0, 100] and map the total to a band."""
    raw = (
        factors.base_type_score
        + factors.deadline_modifier
        + factors.role_modifier
        + factors.critical_flag
        + factors.legal_compliance
    )
    total = min(SCORE_MAX, max(SCORE_MIN, raw))
    return PriorityScore(total=total, priority=priority_for_score(total), factors=factors)


def priority_for_score(total: int) -> NotificationPriority:
    for threshold, priority in PRIORITY_THRESHOLDS:
        if total >= threshold:
            return priority
    return NotificationPriority.LOW


def base_type_score(notification_type: NotificationType | str) -> int:
    try:
        return BASE_TYPE_SCORES[NotificationType(notification_type)]
    except ValueError:
        return DEFAULT_TYPE_SCORE


def deadline_modifier(deadline: datetime | None, now: datetime) -> int:
    if deadline is None:
        return 0
    hours_until = hours_between(now, deadline)
    if hours_until < 0:
        return OVERDUE_MODIFIER
    for bound, modifier in DEADLINE_STEPS:
        if hours_until < bound:
            return modifier
    return 0


def role_modifier(role: str | None) -> int:
    if not role:
        return 0
    return ROLE_MODIFIERS.get(role, 0)


def critical_flag(metadata: Mapping[str, Any]) -> int:
    if metadata.get("is_critical") is True:
        return 25
    if metadata.get("is_urgent") is True:
        return 15
    if metadata.get("is_important") is True:
        return 10
    return 0


def legal_compliance(metadata: Mapping[str, Any]) -> int:
    if metadata.get("legal_compliance") is True or metadata.get("wet_poortwachter") is True:
        return 20
    if metadata.get("compliance_required") is True:
        return 15
    return 0


def factors_for(
    notification_type: NotificationType | str,
    *,
    now: datetime,
    deadline: datetime | None = None,
    role: str | None = None,
    metadata: Mapping[str, Any] | None = None,
) -> PriorityScoreFactors:
    """Derive the weighted factors for a notification at creation time."""
    metadata = metadata or {}
    return PriorityScoreFactors(
        base_type_score=base_type_score(notification_type),
        deadline_modifier=deadline_modifier(deadline, now),
        role_modifier=role_modifier(role),
        critical_flag=critical_flag(metadata),
        legal_compliance=legal_compliance(metadata),
    )


T = TypeVar("T")


def sort_by_priority(notifications: Iterable[T]) -> list[T]:
    """Highest score first; stable for equal scores."""
    return sorted(notifications, key=lambda n: n.priority_score, reverse=True)


def group_by_priority(notifications: Iterable[T]) -> dict[NotificationPriority, list[T]]:
    groups: dict[NotificationPriority, list[T]] = {p: [] for p in PRIORITY_ORDER}
    for n in notifications:
        groups[NotificationPriority(n.priority)].append(n)
    return groups


def fatigue_score(recent_count: int, window_hours: float = 24) -> int:
    """0-100, higher means the recipient has had too many notifications lately."""
    comfortable = 10 * (window_hours / 24)
    if comfortable <= 0:
        return SCORE_MAX
    return min(SCORE_MAX, round(recent_count / comfortable * 50))


def recommend_batching(fatigue: int) -> dict:
    if fatigue < 30:
        return {"should_batch": False, "batch_delay_minutes": 0, "max_batch_size": 1}
    if fatigue < 60:
        return {"should_batch": True, "batch_delay_minutes": 15, "max_batch_size": 5}
    return {"should_batch": True, "batch_delay_minutes": 60, "max_batch_size": 10}
