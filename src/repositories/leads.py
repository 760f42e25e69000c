"""
Lead Repository
Lead-specific persistence and query operations.
"""
from typing import Any, Dict, List, Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
import datetime as dt

from .base import BaseRepository
from ..models.lead import Lead, LeadStatus, TERMINAL_STATUSES
from ..models.qualification import QualificationCriteria
from ..utils.observability import logger


class LeadRepository(BaseRepository[Lead]):
    """
    Repository for Lead persistence and business queries.
    Extends BaseRepository with Lead-specific operations.
    """

    def __init__(self, database: AsyncIOMotorDatabase):
        super().__init__(database, "leads", Lead)

    async def get_eligible_for_progression(
        self,
        tenant_id: Optional[str] = None,
        limit: int = 0
    ) -> List[Lead]:
        """
        Leads the progression engine may act on: non-terminal status and
        auto-progression enabled.

        Args:
            tenant_id: Restrict to one tenant (None = all tenants)
            limit: Maximum number of leads (0 = no limit)
        """
        filter_dict: Dict[str, Any] = {
            "auto_progression_enabled": True,
            "status": {"$nin": [status.value for status in TERMINAL_STATUSES]},
        }
        if tenant_id:
            filter_dict["tenant_id"] = tenant_id

        return await self.find_many(
            filter_dict=filter_dict,
            limit=limit,
            sort=[("updated_at", 1)]  # Least recently touched first
        )

    async def get_qualification_candidates(
        self,
        criteria: QualificationCriteria,
        tenant_id: Optional[str] = None,
        now: Optional[dt.datetime] = None
    ) -> List[Lead]:
        """
        Leads passing the qualification pre-filter.

        Status not excluded, sentiment and engagement at or above their
        minimums, and contacted within the window or never contacted.
        """
        now = now or dt.datetime.now(dt.UTC)
        contact_cutoff = now - dt.timedelta(days=criteria.days_since_last_contact)

        filter_dict: Dict[str, Any] = {
            "status": {"$nin": [status.value for status in criteria.exclude_statuses]},
            "sentiment_score": {"$gte": criteria.min_sentiment_score},
            "engagement_score": {"$gte": criteria.min_engagement_score},
            "$or": [
                {"last_contact_date": {"$gte": contact_cutoff}},
                {"last_contact_date": None},
            ],
        }
        if tenant_id:
            filter_dict["tenant_id"] = tenant_id

        return await self.find_many(
            filter_dict=filter_dict,
            limit=0,
            sort=[("sentiment_score", -1)]
        )

    async def update_status(
        self,
        lead_id: str,
        new_status: LeadStatus,
        automated: bool = False
    ) -> bool:
        """
        Move a lead to a new pipeline status.

        Args:
            lead_id: Lead document id
            new_status: Target status
            automated: Also stamp ``last_auto_progression_at``

        Returns:
            True if updated, False if lead not found
        """
        now = dt.datetime.now(dt.UTC)
        fields: Dict[str, Any] = {"status": new_status.value, "status_updated_at": now}
        if automated:
            fields["last_auto_progression_at"] = now

        updated = await self.update_fields(lead_id, fields)
        if updated:
            logger.info(f"Updated lead status: {lead_id} -> {new_status}")
        return updated

    async def assign(self, lead_id: str, user_id: str, automated: bool = False) -> bool:
        fields: Dict[str, Any] = {"assigned_to": user_id}
        if automated:
            fields["last_auto_progression_at"] = dt.datetime.now(dt.UTC)
        return await self.update_fields(lead_id, fields)

    async def set_next_follow_up(self, lead_id: str, follow_up_at: dt.datetime) -> bool:
        """Record a booked follow-up on the lead."""
        return await self.update_fields(
            lead_id,
            {
                "next_follow_up_date": follow_up_at,
                "last_progression_date": dt.datetime.now(dt.UTC),
            }
        )

    async def count_active(self, tenant_id: Optional[str] = None) -> int:
        filter_dict: Dict[str, Any] = {
            "status": {"$nin": [status.value for status in TERMINAL_STATUSES]}
        }
        if tenant_id:
            filter_dict["tenant_id"] = tenant_id
        return await self.count(filter_dict)

    async def average_scores(self, tenant_id: Optional[str] = None) -> Dict[str, float]:
        """
        Average sentiment and engagement across leads with a known sentiment.

        Returns:
            {"sentiment": float, "engagement": float}, zeros when no leads
        """
        match: Dict[str, Any] = {
            "sentiment_score": {"$ne": None}
        }
        if tenant_id:
            match["tenant_id"] = tenant_id

        pipeline = [
            {"$match": match},
            {
                "$group": {
                    "_id": None,
                    "sentiment": {"$avg": "$sentiment_score"},
                    "engagement": {"$avg": "$engagement_score"},
                }
            },
        ]

        results = await self.collection.aggregate(pipeline).to_list(length=None)
        if not results:
            return {"sentiment": 0.0, "engagement": 0.0}

        return {
            "sentiment": results[0].get("sentiment") or 0.0,
            "engagement": results[0].get("engagement") or 0.0,
        }
