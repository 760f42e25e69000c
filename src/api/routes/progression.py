"""
Auto-Progression Control Endpoints

Start/stop the engine, trigger a pass on demand and read its statistics.
"""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from src.core.errors import LeadNotFoundError, RuleNotFoundError
from src.core.progression_engine import AutoProgressionEngine
from src.api.dependencies import get_engine
from src.models.progression import EngineStats, ProcessingSummary, ProgressionResult, ProgressionRule

router = APIRouter(prefix="/progression", tags=["Progression"])


class StartRequest(BaseModel):
    interval_minutes: Optional[float] = Field(None, gt=0)


@router.get("/stats", response_model=EngineStats)
async def engine_stats(engine: AutoProgressionEngine = Depends(get_engine)):
    return engine.get_engine_stats()


@router.post("/start", response_model=EngineStats)
async def start_engine(
    body: Optional[StartRequest] = None,
    engine: AutoProgressionEngine = Depends(get_engine)
):
    await engine.start(body.interval_minutes if body else None)
    return engine.get_engine_stats()


@router.post("/stop", response_model=EngineStats)
async def stop_engine(engine: AutoProgressionEngine = Depends(get_engine)):
    await engine.stop()
    return engine.get_engine_stats()


@router.post("/run", response_model=ProcessingSummary)
async def run_once(
    tenant_id: Optional[str] = None,
    engine: AutoProgressionEngine = Depends(get_engine)
):
    """Run a single pass now, independent of the timer."""
    return await engine.process_all_leads(tenant_id)


@router.post("/rules", response_model=ProgressionRule, status_code=status.HTTP_201_CREATED)
async def create_rule(rule: ProgressionRule, engine: AutoProgressionEngine = Depends(get_engine)):
    return await engine.create_rule(rule)


@router.post("/rules/{rule_id}/evaluate/{lead_id}", response_model=ProgressionResult)
async def evaluate_rule(
    rule_id: str,
    lead_id: str,
    engine: AutoProgressionEngine = Depends(get_engine)
):
    try:
        return await engine.evaluate_rule_for_lead(rule_id, lead_id)
    except (RuleNotFoundError, LeadNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
