"""
Automation API Routes
Daily recurring-obligation generation: settings, manual runs, statistics
"""
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from obligation_scheduler.dependencies import get_automation_scheduler, get_template_service
from obligation_scheduler.models.automation import AutomationSettingsUpdate
from obligation_scheduler.routes.auth.auth import get_current_user, require_admin_role

router = APIRouter(prefix="/automation", tags=["automation"])


@router.get("/settings")
async def get_automation_settings(
    current_user: dict = Depends(get_current_user),
    scheduler=Depends(get_automation_scheduler),
):
    try:
        settings = await scheduler.get_automation_settings(current_user["firm_id"])
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content=jsonable_encoder({"success": True, "data": settings.model_dump()}),
        )
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to load automation settings: {exc}",
        ) from exc


@router.put("/settings")
async def update_automation_settings(
    body: AutomationSettingsUpdate,
    current_user: dict = Depends(require_admin_role),
    scheduler=Depends(get_automation_scheduler),
):
    """Enable/disable daily generation and set its run time (admin only)."""
    try:
        settings = await scheduler.toggle_automation(
            current_user["firm_id"], body.enabled, body.auto_run_time
        )
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content=jsonable_encoder({"success": True, "data": settings.model_dump()}),
        )
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to save automation settings: {exc}",
        ) from exc


@router.post("/generate")
async def run_generation_now(
    current_user: dict = Depends(require_admin_role),
    scheduler=Depends(get_automation_scheduler),
):
    """Generate recurring obligations now, regardless of the configured run time."""
    try:
        result = await scheduler.run_generation_now(current_user["firm_id"])
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to generate recurring tasks: {exc}",
        ) from exc
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content=jsonable_encoder({
            "success": True,
            "data": {
                "count": result.generated_count,
                "instance_ids": result.instance_ids,
                "failed": result.failed_count,
                "failures": result.failures,
                "skipped": result.skipped_count,
            },
        }),
    )


@router.get("/stats")
async def get_automation_stats(
    current_user: dict = Depends(get_current_user),
    scheduler=Depends(get_automation_scheduler),
):
    try:
        stats = await scheduler.get_automation_stats(current_user["firm_id"])
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content=jsonable_encoder({"success": True, "data": stats.model_dump()}),
        )
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to load automation stats: {exc}",
        ) from exc


@router.get("/schedules")
async def list_schedules(
    current_user: dict = Depends(get_current_user),
    scheduler=Depends(get_automation_scheduler),
):
    try:
        schedules = await scheduler.list_schedules(current_user["firm_id"])
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content=jsonable_encoder({"success": True, "data": [s.model_dump() for s in schedules]}),
        )
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to load schedules: {exc}",
        ) from exc


@router.put("/schedules/{template_id}/toggle")
async def toggle_schedule(
    template_id: str,
    current_user: dict = Depends(require_admin_role),
    templates=Depends(get_template_service),
):
    """Pause or resume one recurring template (admin only)."""
    template = await templates.toggle(current_user["firm_id"], template_id)
    if template is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Schedule not found")
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content=jsonable_encoder({
            "success": True,
            "data": {"template_id": template.id, "is_active": template.is_active},
        }),
    )
