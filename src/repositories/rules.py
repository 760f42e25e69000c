"""
Progression Rule Repository
Active-rule queries and atomic statistics updates.
"""
from typing import Any, Dict, List, Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
import datetime as dt

from .base import BaseRepository, to_object_id
from ..models.progression import ProgressionRule
from ..utils.observability import logger


class ProgressionRuleRepository(BaseRepository[ProgressionRule]):

    def __init__(self, database: AsyncIOMotorDatabase):
        super().__init__(database, "progression_rules", ProgressionRule)

    async def get_active_rules(self, tenant_id: Optional[str] = None) -> List[ProgressionRule]:
        """
        Active rules in creation order. Tenant-less rules apply to every tenant.
        """
        filter_dict: Dict[str, Any] = {"is_active": True}
        if tenant_id:
            filter_dict["tenant_id"] = {"$in": [tenant_id, None]}

        return await self.find_many(filter_dict, limit=0, sort=[("created_at", 1)])

    async def record_execution(
        self,
        rule_id: str,
        success: bool,
        impact: float = 0.0,
        executed_at: Optional[dt.datetime] = None
    ) -> bool:
        """
        Atomically fold one execution into the rule's running statistics.

        Counters are incremented server-side and the derived rates are
        recomputed from the incremented values in the same update, so
        concurrent executions of one rule never lose an update.

        Args:
            rule_id: Rule document id
            success: Whether at least one action succeeded
            impact: Lead score delta attributed to this execution
            executed_at: Execution timestamp (default: now)

        Returns:
            True if the rule exists
        """
        object_id = to_object_id(rule_id)
        if object_id is None:
            return False

        executed_at = executed_at or dt.datetime.now(dt.UTC)
        pipeline = [
            {
                "$set": {
                    "statistics.times_triggered": {
                        "$add": [{"$ifNull": ["$statistics.times_triggered", 0]}, 1]
                    },
                    "statistics.successful_executions": {
                        "$add": [
                            {"$ifNull": ["$statistics.successful_executions", 0]},
                            1 if success else 0,
                        ]
                    },
                    "statistics.total_impact": {
                        "$add": [{"$ifNull": ["$statistics.total_impact", 0]}, impact]
                    },
                    "statistics.last_executed_at": executed_at,
                    "updated_at": executed_at,
                }
            },
            {
                "$set": {
                    "statistics.success_rate": {
                        "$multiply": [
                            {"$divide": [
                                "$statistics.successful_executions",
                                "$statistics.times_triggered",
                            ]},
                            100,
                        ]
                    },
                    "statistics.average_impact": {
                        "$divide": [
                            "$statistics.total_impact",
                            "$statistics.times_triggered",
                        ]
                    },
                }
            },
        ]

        result = await self.collection.update_one({"_id": object_id}, pipeline)

        if result.matched_count == 0:
            logger.warning(f"Cannot record execution, rule {rule_id} not found")
            return False
        return True
