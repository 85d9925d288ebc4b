from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Celestial visibility tool contract

class VisibilityRequest(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    latitude: float = Field(..., ge=-90, le=90, description="Observer's latitude in degrees (-90 to 90)")
    longitude: float = Field(..., ge=-180, le=180, description="Observer's longitude in degrees (-180 to 180)")
    elevation: float = Field(0, description="Observer's elevation above sea level in meters (default: 0)")
    time: Optional[str] = Field(None, description="ISO timestamp for observation time (default: current time)")
    timezone: Optional[str] = Field(None, description="IANA time zone used for clock times, e.g. 'Asia/Kolkata' (default: UTC)")


class Location(CamelModel):
    latitude: float
    longitude: float
    elevation: float


class CelestialBodyInfo(CamelModel):
    name: str
    is_visible: bool
    altitude: float
    azimuth: float
    rise_time: Optional[str] = None
    set_time: Optional[str] = None
    transit_time: Optional[str] = None
    magnitude: Optional[float] = None
    illumination: Optional[float] = None  # Moon only, percent
    visibility_window: str
    best_viewing_time: str
    phase_description: Optional[str] = None  # Moon only


class VisibilityReport(CamelModel):
    observation_time: str
    timezone: str = "UTC"
    location: Location
    celestial_bodies: list[CelestialBodyInfo] = Field(default_factory=list)
    summary: str


# Workflow step models

class WorkflowInput(CamelModel):
    message: str = Field(..., description="User's message")
    thread_id: str = Field(..., description="Thread ID for conversation memory")
    chat_id: int = Field(..., description="Telegram chat ID to pass through")


class AgentStepOutput(CamelModel):
    response: str = Field(..., description="Agent's response")
    chat_id: int = Field(..., description="Telegram chat ID (passed through)")


class SendResult(CamelModel):
    sent: bool = Field(..., description="Whether message was sent successfully")
    message_id: Optional[int] = Field(None, description="Telegram message ID")
