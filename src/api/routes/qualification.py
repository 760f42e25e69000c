"""
Qualification & Lead Score Endpoints
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status

from src.api.dependencies import get_detector, get_scoring_service
from src.core.errors import LeadNotFoundError, QualificationError
from src.models.qualification import QualificationResult, QualificationStats
from src.models.scoring import LeadScore
from src.services.lead_scorer import LeadScoringService
from src.services.qualification_detector import QualifiedLeadDetector

router = APIRouter(tags=["Qualification"])


@router.get("/qualification/leads", response_model=List[QualificationResult])
async def qualified_leads(
    tenant_id: Optional[str] = None,
    detector: QualifiedLeadDetector = Depends(get_detector)
):
    try:
        return await detector.detect_qualified_leads(tenant_id)
    except QualificationError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@router.get("/qualification/stats", response_model=QualificationStats)
async def qualification_stats(
    tenant_id: Optional[str] = None,
    detector: QualifiedLeadDetector = Depends(get_detector)
):
    try:
        return await detector.get_qualification_stats(tenant_id)
    except QualificationError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@router.get("/leads/{lead_id}/score", response_model=LeadScore)
async def lead_score(
    lead_id: str,
    scoring: LeadScoringService = Depends(get_scoring_service)
):
    try:
        return await scoring.calculate_lead_score(lead_id)
    except LeadNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
