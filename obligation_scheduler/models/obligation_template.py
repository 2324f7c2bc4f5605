"""Obligation template: what gets created when a pattern fires."""
from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, Field

Category = Literal["gst", "itr", "roc", "other"]
Priority = Literal["low", "medium", "high", "urgent"]


class ObligationTemplateCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    category: Category = "other"
    priority: Priority = "medium"
    client_id: Optional[str] = None
    assigned_to: List[str] = Field(default_factory=list, description="User ids")
    pattern_id: Optional[str] = Field(None, description="Recurrence pattern; None for one-off templates")
    estimated_hours: Optional[float] = Field(None, ge=0)
    tags: List[str] = Field(default_factory=list)
    is_active: bool = True


class ObligationTemplate(ObligationTemplateCreate):
    id: str = Field(alias="_id")
    firm_id: str
    last_generated_at: Optional[datetime] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        populate_by_name = True
