from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from bson import ObjectId

from obligation_scheduler.config import _now_utc
from obligation_scheduler.db import TEMPLATES, get_collection
from obligation_scheduler.models.obligation_template import ObligationTemplate, ObligationTemplateCreate


class ObligationTemplateService:
    def __init__(self, collection=None):
        self.collection = collection if collection is not None else get_collection(TEMPLATES)

    async def create_template(
        self,
        firm_id: str,
        created_by: Optional[str],
        payload: Union[ObligationTemplateCreate, Dict[str, Any]],
    ) -> ObligationTemplate:
        if not isinstance(payload, ObligationTemplateCreate):
            payload = ObligationTemplateCreate.model_validate(payload)
        now = _now_utc()
        doc = payload.model_dump()
        doc.update({
            "_id": str(ObjectId()),
            "firm_id": firm_id,
            "last_generated_at": None,
            "created_by": created_by,
            "created_at": now,
            "updated_at": now,
        })
        await self.collection.insert_one(doc)
        return ObligationTemplate(**doc)

    async def get_template(self, firm_id: str, template_id: str) -> Optional[ObligationTemplate]:
        doc = await self.collection.find_one({"_id": template_id, "firm_id": firm_id})
        if doc:
            return ObligationTemplate(**doc)
        return None

    async def list_active(self, firm_id: str, pattern_ids: List[str]) -> List[ObligationTemplate]:
        """Active templates bound to one of ``pattern_ids``. One-off templates never match."""
        if not pattern_ids:
            return []
        cursor = self.collection.find({
            "firm_id": firm_id,
            "is_active": True,
            "pattern_id": {"$in": list(pattern_ids)},
        })
        return [ObligationTemplate(**doc) async for doc in cursor]

    async def list_recurring(self, firm_id: str) -> List[ObligationTemplate]:
        """All templates with a pattern binding, active or not."""
        cursor = self.collection.find({"firm_id": firm_id, "pattern_id": {"$ne": None}}).sort("title", 1)
        return [ObligationTemplate(**doc) async for doc in cursor]

    async def update_last_generated(self, template_id: str, when: datetime) -> None:
        await self.collection.update_one(
            {"_id": template_id},
            {"$set": {"last_generated_at": when, "updated_at": _now_utc()}},
        )

    async def set_active(self, firm_id: str, template_id: str, is_active: bool) -> Optional[ObligationTemplate]:
        result = await self.collection.update_one(
            {"_id": template_id, "firm_id": firm_id},
            {"$set": {"is_active": is_active, "updated_at": _now_utc()}},
        )
        if result.matched_count == 0:
            return None
        return await self.get_template(firm_id, template_id)

    async def toggle(self, firm_id: str, template_id: str) -> Optional[ObligationTemplate]:
        template = await self.get_template(firm_id, template_id)
        if template is None:
            return None
        return await self.set_active(firm_id, template_id, not template.is_active)
