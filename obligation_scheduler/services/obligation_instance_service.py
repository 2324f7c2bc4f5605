"""
Obligation Instance Service
The slice of task storage the engine needs: existence check, insert, lookup.
"""
from typing import Optional
import logging

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from obligation_scheduler.config import _now_utc
from obligation_scheduler.db import INSTANCES, get_collection
from obligation_scheduler.models.obligation_instance import ObligationInstance

logger = logging.getLogger(__name__)


class ObligationInstanceService:
    def __init__(self, collection=None):
        self.collection = collection if collection is not None else get_collection(INSTANCES)

    async def exists(self, firm_id: str, template_id: str, due_day: str) -> bool:
        """Is there already an instance of this template due on this calendar day?"""
        doc = await self.collection.find_one(
            {"firm_id": firm_id, "template_id": template_id, "due_day": due_day},
            projection={"_id": 1},
        )
        return doc is not None

    async def create(self, instance: ObligationInstance) -> Optional[str]:
        """
        Insert the instance and return its id.
        Returns None when another writer already created the same
        (template_id, due_day) pair; the unique index decides.
        """
        doc = instance.model_dump(by_alias=True)
        doc["_id"] = str(ObjectId())
        doc["created_at"] = _now_utc()
        try:
            await self.collection.insert_one(doc)
        except DuplicateKeyError:
            logger.info(
                f"Instance for template {instance.template_id} on {instance.due_day} already exists"
            )
            return None
        return doc["_id"]

    async def find_by_id(self, firm_id: str, instance_id: str) -> Optional[ObligationInstance]:
        doc = await self.collection.find_one({"_id": instance_id, "firm_id": firm_id})
        if doc:
            return ObligationInstance(**doc)
        return None
