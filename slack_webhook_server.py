from fastapi import FastAPI, Request
from pydantic import BaseModel
from typing import Dict, List
import asyncio
import logging
import os
from dotenv import load_dotenv

# Load environment variables from .env.local (override=True to pick up changes)
load_dotenv('.env.local', override=True)

from interfaces.slack.core_slack_orchestration import create_slack_app
from reminders.config import load_config_from_yaml
from reminders.errors import install_global_error_handlers

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Create a FastAPI instance
app = FastAPI(
    title="Mention Reminder Bot",
    description="Slack webhook server that nags mentioned users until they respond",
    version="1.0.0"
)

# Response models
class TrackedMessageStatus(BaseModel):
    message_id: str
    channel_id: str
    state: str
    recipients: List[str]
    acknowledged: List[str]
    attempt_count: Dict[str, int]
    created_at: float
    cycles_run: int

class ReminderStatus(BaseModel):
    tracked: int
    max_reminders: int
    reminder_interval_ms: int
    quiet_hours_enabled: bool
    messages: List[TrackedMessageStatus]

# Get the Slack interface
config = load_config_from_yaml()
slack_interface = create_slack_app(config)
slack_handler = slack_interface.get_fastapi_handler()

# Startup/shutdown events
@app.on_event("startup")
async def startup_event():
    install_global_error_handlers(asyncio.get_running_loop())
    await slack_interface.start()
    logger.info("Reminder service started")

@app.on_event("shutdown")
async def shutdown_event():
    await slack_interface.stop()
    logger.info("Reminder service stopped")

# Slack webhook endpoints
@app.post("/slack/events")
async def slack_events_endpoint(request: Request):
    """Endpoint for Slack Events API (messages, reactions, etc.)"""
    return await slack_handler.handle(request)

@app.get("/api/reminders/status", response_model=ReminderStatus)
async def reminder_status():
    """Messages currently being tracked"""
    engine = slack_interface.engine
    return ReminderStatus(
        tracked=len(engine),
        max_reminders=config.max_reminders,
        reminder_interval_ms=config.reminder_interval_ms,
        quiet_hours_enabled=config.quiet_hours_enabled,
        messages=[TrackedMessageStatus(**snapshot) for snapshot in engine.status()]
    )

@app.get("/health")
async def health_check():
    """Health check for the reminder service"""
    return {
        "status": "healthy",
        "tracked_messages": len(slack_interface.engine),
        "cache": slack_interface.cache_service.get_cache_stats()
    }

# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with service information"""
    return {
        "service": "Mention Reminder Bot",
        "slack_endpoints": ["/slack/events"],
        "api_endpoints": ["/api/reminders/status"],
        "health": "/health",
        "docs": "/docs"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "3000")))
