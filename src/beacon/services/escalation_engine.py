"""Time-delayed escalation of unacted notifications along a rule's chain.

A lineage is a root notification plus every notification escalated from
it (rows sharing the root's ``root_id``). The number of escalated
descendants is the index of the next chain step, so each evaluation fires
at most one step and steps are never skipped. A failed resolution is
recorded in the history but creates no notification, so the same step is
retried on the next run.
"""

import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.db.models.escalation import EscalationRuleRow
from beacon.db.models.notification import NotificationRow
from beacon.errors.exceptions import (
    BeaconError,
    EscalationResolutionError,
    NotFoundError,
    PersistenceError,
)
from beacon.models.enums import EscalationOutcome, NotificationStatus, NotificationType
from beacon.models.escalation import (
    EscalationRule,
    EscalationRuleCreate,
    EscalationRuleUpdate,
    EscalationRunResult,
    EscalationStep,
)
from beacon.models.notification import NotificationCreate
from beacon.repositories.directory_repo import DirectoryUserRepository
from beacon.repositories.escalation_repo import EscalationHistoryRepository, EscalationRuleRepository
from beacon.repositories.notification_repo import NotificationRepository
from beacon.services.clock import as_utc, hours_between
from beacon.services.id_generator import HISTORY_PREFIX, RULE_PREFIX, generate_id
from beacon.services.notification_service import EscalationLink, NotificationService

logger = logging.getLogger(__name__)

CRITICAL_FROM_LEVEL = 2
LEGAL_ENTITY_TYPES = frozenset({"case"})


def cumulative_delay(rule: EscalationRuleRow, steps: list[EscalationStep], index: int) -> float:
    """Hours the root must stay unacted before step ``index`` may fire."""
    return rule.delay_hours + sum(step.after_hours for step in steps[: index + 1])


class EscalationEngine:
    def __init__(self, session: AsyncSession, notifications: NotificationService):
        self.session = session
        self.notifications = notifications
        self.rules = EscalationRuleRepository(session)
        self.history = EscalationHistoryRepository(session)
        self.rows = NotificationRepository(session)
        self.directory = DirectoryUserRepository(session)

    # --- rule management ---

    async def create_rule(self, body: EscalationRuleCreate) -> EscalationRule:
        values = body.model_dump(mode="json")
        row = await self.rules.create(rule_id=generate_id(RULE_PREFIX), **values)
        await self._commit()
        return EscalationRule.model_validate(row)

    async def get_rule(self, rule_id: str) -> EscalationRuleRow:
        row = await self.rules.get(rule_id)
        if row is None:
            raise NotFoundError("Escalation rule", rule_id)
        return row

    async def update_rule(self, rule_id: str, body: EscalationRuleUpdate) -> EscalationRule:
        row = await self.get_rule(rule_id)
        await self.rules.update(row, **body.model_dump(mode="json", exclude_unset=True))
        await self._commit()
        return EscalationRule.model_validate(row)

    async def delete_rule(self, rule_id: str) -> None:
        row = await self.get_rule(rule_id)
        await self.rules.delete(row)
        await self._commit()

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError("Failed to persist escalation state") from exc

    # --- evaluation ---

    async def process_escalations(self, now: datetime) -> EscalationRunResult:
        """Evaluate every open lineage governed by an active rule.

        A fault in one lineage is logged and rolled back; the others still run.
        """
        result = EscalationRunResult()
        rule_ids = [rule.rule_id for rule in await self.rules.list_active()]
        # Plain ids only: a rollback expires every loaded row
        pending = [(root.notification_id, root.rule_id) for root in await self.rows.list_escalation_roots(rule_ids)]

        for root_id, rule_id in pending:
            result.evaluated += 1
            try:
                root = await self.rows.get(root_id)
                if root is None:
                    continue
                outcome = await self.evaluate_lineage(root, await self.rules.get(rule_id), now)
            except (BeaconError, SQLAlchemyError) as exc:
                await self.session.rollback()
                logger.warning("Escalation of %s aborted: %s", root_id, getattr(exc, "message", exc))
                continue
            if outcome == EscalationOutcome.ESCALATED:
                result.escalated += 1
            elif outcome == EscalationOutcome.FAILED:
                result.failed += 1

        logger.info(
            "Escalation run: evaluated=%d escalated=%d failed=%d",
            result.evaluated, result.escalated, result.failed,
        )
        return result

    async def evaluate_lineage(
        self, root: NotificationRow, rule: EscalationRuleRow | None, now: datetime
    ) -> EscalationOutcome | None:
        """Fire the next due chain step for one lineage, if any.

        Returns the recorded outcome, or None when nothing was due.
        """
        lineage = await self.rows.list_lineage(root.notification_id)

        if any(n.status == NotificationStatus.ACTED for n in lineage):
            return None
        if root.status == NotificationStatus.FAILED:
            return None
        if root.expires_at is not None and as_utc(now) > as_utc(root.expires_at):
            return None

        leaf = lineage[-1]
        if rule is None:
            return await self._record_failure(
                root, leaf, None, leaf.escalation_level + 1, "Escalation rule not found", now
            )

        steps = [EscalationStep.model_validate(step) for step in rule.escalation_chain]
        step_index = len(lineage) - 1
        if step_index >= len(steps):
            return None
        if hours_between(root.created_at, now) < cumulative_delay(rule, steps, step_index):
            return None

        step = steps[step_index]
        level = leaf.escalation_level + 1
        try:
            target = await self.resolve_target(step, leaf)
        except EscalationResolutionError as exc:
            return await self._record_failure(root, leaf, rule, level, exc.message, now)

        metadata: dict = {"original_notification_id": root.notification_id, "escalation_role": step.role}
        if level >= CRITICAL_FROM_LEVEL:
            metadata["is_critical"] = True
        if rule.entity_type in LEGAL_ENTITY_TYPES:
            metadata["legal_compliance"] = True

        child = await self.notifications.create(
            NotificationCreate(
                user_id=target,
                title=f"Escalated: {root.title}",
                message=(
                    f"{root.message}\n\nThis was escalated to you because it has not been "
                    f"handled within {cumulative_delay(rule, steps, step_index):g} hours."
                ),
                type=NotificationType.ESCALATION,
                metadata=metadata,
                related_entity_type=root.related_entity_type,
                related_entity_id=root.related_entity_id,
                deep_link=root.deep_link,
                recipient_role=step.role,
            ),
            now=now,
            escalation=EscalationLink(
                escalated_from=leaf.notification_id,
                root_id=root.notification_id,
                rule_id=rule.rule_id,
                escalation_level=level,
            ),
            commit=False,
        )
        await self.history.create(
            history_id=generate_id(HISTORY_PREFIX),
            notification_id=leaf.notification_id,
            escalated_notification_id=child.notification_id,
            rule_id=rule.rule_id,
            from_user_id=leaf.user_id,
            to_user_id=child.user_id,
            escalation_level=level,
            outcome=EscalationOutcome.ESCALATED.value,
            reason=f"Unacted after {hours_between(root.created_at, now):.1f}h; step {step_index + 1} ({step.role})",
            created_at=now,
        )
        await self._commit()
        logger.info(
            "Escalated %s to %s at level %d (rule %s)",
            leaf.notification_id, child.user_id, level, rule.rule_id,
        )
        return EscalationOutcome.ESCALATED

    async def _record_failure(
        self,
        root: NotificationRow,
        leaf: NotificationRow,
        rule: EscalationRuleRow | None,
        level: int,
        reason: str,
        now: datetime,
    ) -> EscalationOutcome:
        last = await self.history.latest_for_notification(leaf.notification_id)
        if (
            last is not None
            and last.outcome == EscalationOutcome.FAILED
            and last.escalation_level == level
            and last.reason == reason
        ):
            # Same step still unresolvable; keep retrying without growing the history
            logger.debug("Escalation of %s still failing: %s", root.notification_id, reason)
            return EscalationOutcome.FAILED

        await self.history.create(
            history_id=generate_id(HISTORY_PREFIX),
            notification_id=leaf.notification_id,
            escalated_notification_id=None,
            rule_id=rule.rule_id if rule else root.rule_id,
            from_user_id=leaf.user_id,
            to_user_id=None,
            escalation_level=level,
            outcome=EscalationOutcome.FAILED.value,
            reason=reason,
            created_at=now,
        )
        await self._commit()
        logger.warning("Escalation of %s failed: %s", root.notification_id, reason)
        return EscalationOutcome.FAILED

    async def resolve_target(self, step: EscalationStep, parent: NotificationRow) -> str:
        """Map a chain step to a user id.

        An explicit ``user_id`` wins; the ``manager`` role resolves to the
        parent recipient's manager; any other role picks the first active
        directory user holding it.
        """
        if step.user_id:
            user = await self.directory.get(step.user_id)
            if user is None or not user.active:
                raise EscalationResolutionError(f"User '{step.user_id}' not found or inactive")
            return user.user_id

        if step.role == "manager":
            recipient = await self.directory.get(parent.user_id)
            if recipient is None or not recipient.manager_id:
                raise EscalationResolutionError(f"No manager on record for '{parent.user_id}'")
            manager = await self.directory.get(recipient.manager_id)
            if manager is None or not manager.active:
                raise EscalationResolutionError(f"Manager '{recipient.manager_id}' not found or inactive")
            return recipient.manager_id

        user = await self.directory.first_active_with_role(step.role)
        if user is None:
            raise EscalationResolutionError(f"No active user with role '{step.role}'")
        return user.user_id

    async def history_for(self, notification_id: str) -> list:
        """History rows for every notification in the lineage containing ``notification_id``."""
        row = await self.notifications.get(notification_id)
        lineage = await self.rows.list_lineage(row.root_id or row.notification_id)
        return await self.history.list_for_notifications([n.notification_id for n in lineage])
