import asyncio

from fastapi import APIRouter, HTTPException, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from celestial_bot.agents.schemas import VisibilityReport, VisibilityRequest
from celestial_bot.logging_config import get_logger
from celestial_bot.services.celestial import TOOL_ID, calculate_visibility

logger = get_logger("api.tools")

# Rate limiter for the ephemeris endpoint
limiter = Limiter(key_func=get_remote_address)

router = APIRouter(prefix="/api/tools", tags=["tools"])


@router.post(
    "/celestial-visibility",
    response_model=VisibilityReport,
    response_model_by_alias=True,
)
@limiter.limit("30/minute")  # Rate limit: 30 requests per minute per IP
async def celestial_visibility(
    request: Request,  # Required for rate limiter
    body: VisibilityRequest
) -> VisibilityReport:
    """
    Run the celestial visibility tool directly.

    Same request/response contract the agent sees.
    """
    logger.info(f"[API] {TOOL_ID} called: lat={body.latitude}, lon={body.longitude}")

    try:
        return await asyncio.to_thread(calculate_visibility, body)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
