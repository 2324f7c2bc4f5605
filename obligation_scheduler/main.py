# obligation_scheduler/main.py
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

# load .env before settings are read
load_dotenv()

from obligation_scheduler.config import get_settings
from obligation_scheduler.db import create_indexes, close_client
from obligation_scheduler.dependencies import get_automation_scheduler, reset_providers
from obligation_scheduler.logging_config import configure_logging
from obligation_scheduler.routes.automation import router as automation_router
from obligation_scheduler.routes.recurrence_patterns import router as recurrence_patterns_router
from obligation_scheduler.routes.templates import router as templates_router

settings = get_settings()
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    description="Recurring compliance obligation scheduling",
    version=settings.app_version,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(recurrence_patterns_router, prefix="/api")
app.include_router(automation_router, prefix="/api")
app.include_router(templates_router, prefix="/api")


@app.on_event("startup")
async def on_startup():
    configure_logging(settings.log_level)
    await create_indexes()
    if settings.scheduler_enabled:
        await get_automation_scheduler().start()
    else:
        logger.info("Automation scheduler disabled by configuration")


@app.on_event("shutdown")
async def on_shutdown():
    await get_automation_scheduler().stop()
    close_client()
    reset_providers()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": f"Welcome to {settings.app_name}",
        "status": "running",
        "version": settings.app_version,
    }
