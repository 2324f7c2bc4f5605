"""
Recurrence Pattern API Routes
Manage a firm's recurrence patterns, presets and previews
"""
from datetime import date
from typing import Any, Dict, Optional
from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from obligation_scheduler.dependencies import get_pattern_service
from obligation_scheduler.errors import ComputationError, NotFoundError, PatternValidationError
from obligation_scheduler.routes.auth.auth import get_current_user, require_admin_role

router = APIRouter(prefix="/recurrence-patterns", tags=["recurrence-patterns"])


class PreviewRequest(BaseModel):
    """Request to preview upcoming occurrences."""
    start_date: Optional[date] = Field(None, description="Preview from this day (default today)")
    count: int = Field(default=5, ge=1, le=50)


def _ok(data: Any, status_code: int = status.HTTP_200_OK, message: Optional[str] = None) -> JSONResponse:
    content = {"success": True, "data": data}
    if message:
        content["message"] = message
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content))


def _invalid(exc: PatternValidationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={"message": str(exc), "errors": exc.errors},
    )


@router.get("/")
async def list_patterns(
    type: Optional[str] = Query(None, description="monthly, yearly, quarterly or custom"),
    is_active: bool = True,
    current_user: dict = Depends(get_current_user),
    patterns=Depends(get_pattern_service),
):
    """List the firm's recurrence patterns."""
    try:
        items = await patterns.list_patterns(current_user["firm_id"], pattern_type=type, is_active=is_active)
        return _ok({"patterns": [p.public() for p in items]})
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error fetching recurrence patterns: {exc}",
        ) from exc


@router.post("/create-presets")
async def create_presets(
    current_user: dict = Depends(require_admin_role),
    patterns=Depends(get_pattern_service),
):
    """Seed the canonical compliance cadences for the firm."""
    try:
        created = await patterns.seed_preset_patterns(current_user["firm_id"], current_user["id"])
        return _ok(
            {"presets": [p.public() for p in created]},
            message=f"Created {len(created)} preset patterns",
        )
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error creating preset patterns: {exc}",
        ) from exc


@router.get("/{pattern_id}")
async def get_pattern(
    pattern_id: str,
    current_user: dict = Depends(get_current_user),
    patterns=Depends(get_pattern_service),
):
    pattern = await patterns.get_pattern(current_user["firm_id"], pattern_id)
    if pattern is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recurrence pattern not found")
    return _ok({"pattern": pattern.public()})


@router.post("/")
async def create_pattern(
    body: Dict[str, Any] = Body(...),
    current_user: dict = Depends(require_admin_role),
    patterns=Depends(get_pattern_service),
):
    """Create a recurrence pattern (admin only)."""
    try:
        pattern = await patterns.create_pattern(current_user["firm_id"], current_user["id"], body)
        return _ok({"pattern": pattern.public()}, status.HTTP_201_CREATED, "Recurrence pattern created successfully")
    except PatternValidationError as exc:
        raise _invalid(exc) from exc
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error creating recurrence pattern: {exc}",
        ) from exc


@router.put("/{pattern_id}")
async def update_pattern(
    pattern_id: str,
    body: Dict[str, Any] = Body(...),
    current_user: dict = Depends(require_admin_role),
    patterns=Depends(get_pattern_service),
):
    """Update a recurrence pattern (admin only)."""
    try:
        pattern = await patterns.update_pattern(current_user["firm_id"], pattern_id, body)
        return _ok({"pattern": pattern.public()}, message="Recurrence pattern updated successfully")
    except PatternValidationError as exc:
        raise _invalid(exc) from exc
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error updating recurrence pattern: {exc}",
        ) from exc


@router.delete("/{pattern_id}")
async def delete_pattern(
    pattern_id: str,
    current_user: dict = Depends(require_admin_role),
    patterns=Depends(get_pattern_service),
):
    """Delete a recurrence pattern (admin only)."""
    deleted = await patterns.delete_pattern(current_user["firm_id"], pattern_id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recurrence pattern not found")
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={"success": True, "message": "Recurrence pattern deleted successfully"},
    )


@router.post("/{pattern_id}/preview")
async def preview_pattern(
    pattern_id: str,
    body: Optional[PreviewRequest] = None,
    current_user: dict = Depends(get_current_user),
    patterns=Depends(get_pattern_service),
):
    """Preview the next occurrences of a pattern."""
    body = body or PreviewRequest()
    try:
        preview = await patterns.preview_occurrences(
            current_user["firm_id"], pattern_id, body.start_date, body.count
        )
        return _ok(preview)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ComputationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
