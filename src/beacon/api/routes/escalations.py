"""Escalation rule CRUD and escalation history endpoints."""

from fastapi import APIRouter, Query, Response

from beacon.dependencies import Escalations, Writer
from beacon.models.escalation import (
    EscalationHistory,
    EscalationRule,
    EscalationRuleCreate,
    EscalationRuleUpdate,
)

router = APIRouter(tags=["Escalations"])


@router.post("/escalation-rules", status_code=201)
async def create_rule(body: EscalationRuleCreate, engine: Escalations, _user: Writer) -> dict:
    return (await engine.create_rule(body)).model_dump(mode="json")


@router.get("/escalation-rules")
async def list_rules(engine: Escalations, active_only: bool = Query(False)) -> list[dict]:
    rows = await (engine.rules.list_active() if active_only else engine.rules.list_all())
    return [EscalationRule.model_validate(r).model_dump(mode="json") for r in rows]


@router.get("/escalation-rules/{rule_id}")
async def get_rule(rule_id: str, engine: Escalations) -> dict:
    return EscalationRule.model_validate(await engine.get_rule(rule_id)).model_dump(mode="json")


@router.patch("/escalation-rules/{rule_id}")
async def update_rule(
    rule_id: str, body: EscalationRuleUpdate, engine: Escalations, _user: Writer
) -> dict:
    return (await engine.update_rule(rule_id, body)).model_dump(mode="json")


@router.delete("/escalation-rules/{rule_id}", status_code=204)
async def delete_rule(rule_id: str, engine: Escalations, _user: Writer) -> Response:
    await engine.delete_rule(rule_id)
    return Response(status_code=204)


@router.get("/notifications/{notification_id}/escalations")
async def notification_escalations(notification_id: str, engine: Escalations) -> list[dict]:
    rows = await engine.history_for(notification_id)
    return [EscalationHistory.model_validate(r).model_dump(mode="json") for r in rows]
