from fastapi import FastAPI, Request, Header, HTTPException
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from celestial_bot.config import get_settings
from celestial_bot.logging_config import get_logger, setup_logging
from celestial_bot.api.tools import limiter, router as tools_router
from celestial_bot.services.memory import init_db
from celestial_bot.telegram_bot.bot import handle_telegram_update

logger = get_logger("main")

VERSION = "0.1.0"

app = FastAPI(
    title="Celestial Visibility Bot",
    description="Telegram bot that tells you which planets and Moon phase you can see from where you are",
    version=VERSION
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# Lifecycle events
@app.on_event("startup")
async def startup_event():
    """Configure logging and open the conversation database."""
    settings = get_settings()
    setup_logging(settings.log_level)
    init_db(settings.database_url)
    logger.info(f"[STARTUP] Celestial bot ready (environment={settings.environment})")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    settings = get_settings()
    return {
        "status": "ok",
        "environment": settings.environment,
        "version": VERSION
    }


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Celestial Visibility Bot",
        "docs": "/docs",
        "webhook": "/webhooks/telegram/action"
    }


# Telegram webhook endpoint
@app.post("/webhooks/telegram/action")
async def telegram_webhook(
    request: Request,
    x_telegram_bot_api_secret_token: str = Header(None)
):
    """
    Webhook endpoint for Telegram updates.

    Blocks until the workflow (agent + reply) has finished. Workflow
    failures are reported in the body with status 200 so Telegram does
    not redeliver the update.
    """
    settings = get_settings()

    # Verify secret token if configured
    if settings.telegram_webhook_secret:
        if x_telegram_bot_api_secret_token != settings.telegram_webhook_secret:
            raise HTTPException(status_code=403, detail="Invalid secret token")

    try:
        update_data = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    if not isinstance(update_data, dict):
        raise HTTPException(status_code=400, detail="Update must be a JSON object")

    return await handle_telegram_update(update_data)


# Include routers
app.include_router(tools_router)


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
