"""
Obligation Template API Routes
Bind work-item templates to recurrence patterns
"""
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from obligation_scheduler.dependencies import get_pattern_service, get_template_service
from obligation_scheduler.models.obligation_template import ObligationTemplateCreate
from obligation_scheduler.routes.auth.auth import get_current_user, require_admin_role

router = APIRouter(prefix="/templates", tags=["templates"])


@router.post("/")
async def create_template(
    body: ObligationTemplateCreate,
    current_user: dict = Depends(require_admin_role),
    templates=Depends(get_template_service),
    patterns=Depends(get_pattern_service),
):
    """Create a template; a pattern binding must belong to the caller's firm."""
    firm_id = current_user["firm_id"]
    if body.pattern_id is not None:
        pattern = await patterns.get_pattern(firm_id, body.pattern_id)
        if pattern is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recurrence pattern not found")
    try:
        template = await templates.create_template(firm_id, current_user["id"], body)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create template: {exc}",
        ) from exc
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content=jsonable_encoder({"success": True, "data": template.model_dump()}),
    )


@router.get("/{template_id}")
async def get_template(
    template_id: str,
    current_user: dict = Depends(get_current_user),
    templates=Depends(get_template_service),
):
    template = await templates.get_template(current_user["firm_id"], template_id)
    if template is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Template not found")
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content=jsonable_encoder({"success": True, "data": template.model_dump()}),
    )
