"""
Celestial visibility calculations.

Reports which of the Sun, the Moon and the seven planets are above the
horizon for an observer, with next rise/set/transit times, brightness,
the Moon's phase and a best-viewing recommendation for each body.

All ephemeris work (positions, rise/set and hour-angle searches,
illumination) is done by Astronomy Engine. This module only converts
times, applies the visibility heuristics and shapes the tool output.

Usage:
    from celestial_bot.services.celestial import calculate_visibility
    from celestial_bot.agents.schemas import VisibilityRequest

    report = calculate_visibility(VisibilityRequest(latitude=25.6, longitude=85.1))
    print(report.summary)
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import astronomy as astro  # Astronomy Engine

from celestial_bot.agents.schemas import (
    CelestialBodyInfo,
    Location,
    VisibilityReport,
    VisibilityRequest,
)
from celestial_bot.logging_config import get_logger

logger = get_logger("celestial")


# =============================================================================
# CONFIGURATION
# =============================================================================

BODIES = (
    astro.Body.Sun,
    astro.Body.Moon,
    astro.Body.Mercury,
    astro.Body.Venus,
    astro.Body.Mars,
    astro.Body.Jupiter,
    astro.Body.Saturn,
    astro.Body.Uranus,
    astro.Body.Neptune,
)

SEARCH_WINDOW_DAYS = 2  # Forward limit for rise/set searches
SETTING_SOON_HOURS = 2.0

# J2000.0 epoch: January 1, 2000, 12:00:00 UTC
J2000_EPOCH = datetime(2000, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

SUN_WARNING = "⚠️ NEVER view the Sun directly through a telescope without proper solar filters!"

TOOL_ID = "celestial-visibility-tool"
TOOL_NAME = "celestial_visibility_tool"
TOOL_DESCRIPTION = (
    "Calculates which celestial bodies (Sun, Moon, planets) are visible from a specific "
    "location at a given time. Returns detailed information about visibility windows, "
    "rise/set times, current positions, and BEST VIEWING TIMES for major celestial objects."
)

VISIBILITY_TOOL = {
    "type": "function",
    "function": {
        "name": TOOL_NAME,
        "description": TOOL_DESCRIPTION,
        "parameters": {
            "type": "object",
            "properties": {
                "latitude": {
                    "type": "number",
                    "minimum": -90,
                    "maximum": 90,
                    "description": "Observer's latitude in degrees (-90 to 90)"
                },
                "longitude": {
                    "type": "number",
                    "minimum": -180,
                    "maximum": 180,
                    "description": "Observer's longitude in degrees (-180 to 180)"
                },
                "elevation": {
                    "type": "number",
                    "description": "Observer's elevation above sea level in meters (default: 0)"
                },
                "time": {
                    "type": "string",
                    "description": "ISO timestamp for observation time (default: current time)"
                },
                "timezone": {
                    "type": "string",
                    "description": "IANA time zone of the observer for clock times, e.g. 'Europe/Paris' (default: UTC)"
                }
            },
            "required": ["latitude", "longitude"]
        }
    }
}


# =============================================================================
# TIME HELPERS
# =============================================================================

def parse_observation_time(text: Optional[str]) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    None means "now". Naive timestamps are taken as UTC.
    Raises ValueError for text that is not ISO-8601.
    """
    if not text:
        return datetime.now(timezone.utc)

    value = text.strip()
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise ValueError(f"Invalid observation time '{text}': expected an ISO-8601 timestamp")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def resolve_timezone(name: Optional[str]) -> tzinfo:
    """Return the zone used for clock times. Unknown names raise ValueError."""
    if not name or name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown time zone '{name}'")


def to_astro_time(dt: datetime) -> astro.Time:
    """Convert a datetime to Astronomy Engine time (days since J2000.0)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return astro.Time((dt - J2000_EPOCH).total_seconds() / 86400.0)


def from_astro_time(t: astro.Time) -> datetime:
    """Convert Astronomy Engine time back to an aware UTC datetime."""
    return J2000_EPOCH + timedelta(days=t.ut)


def format_time(dt: Optional[datetime], tz: tzinfo = timezone.utc) -> Optional[str]:
    """Format as 12-hour clock time, e.g. '07:45 PM'."""
    if dt is None:
        return None
    return dt.astimezone(tz).strftime("%I:%M %p")


def isoformat_utc(dt: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a 'Z' suffix."""
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def _hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600.0


def _clock(dt: Optional[datetime], tz: tzinfo) -> str:
    return format_time(dt, tz) or "an unknown time"


# =============================================================================
# EVENTS
# =============================================================================

@dataclass(frozen=True)
class BodyEvents:
    """Next rise, set and transit after the observation time (None if not found)."""
    rise: Optional[datetime] = None
    set: Optional[datetime] = None
    transit: Optional[datetime] = None


@dataclass(frozen=True)
class DarkWindow:
    """
    The next night: from sunset (or now, if the Sun is already down) to sunrise.

    start is None when the Sun does not set within the search window.
    end is None when it does not rise again within the window.
    """
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def effective_end(self) -> Optional[datetime]:
        if self.start is None:
            return None
        return self.end or self.start + timedelta(days=SEARCH_WINDOW_DAYS)


def is_up_at(when: datetime, now: datetime, up_now: bool, events: BodyEvents) -> bool:
    """
    Whether the body is above the horizon at `when`, judged from its
    state at `now` and its next rise/set events.
    """
    if when <= now:
        return up_now

    rise, set_ = events.rise, events.set
    if up_now:
        if set_ is None or when < set_:
            return True
        return rise is not None and set_ < rise <= when

    if rise is None or when < rise:
        return False
    return set_ is None or set_ < rise or when < set_


# =============================================================================
# MOON PHASE
# =============================================================================

def moon_phase_label(illumination: float, waxing: bool = True) -> str:
    """
    Name the Moon's phase from its illuminated percentage.

    Thresholds: <1 New, <40 Crescent, <60 Quarter, <99 Gibbous, else Full.
    `waxing` selects Waxing/Waning and First/Last Quarter.
    """
    pct = min(max(illumination, 0.0), 100.0)
    trend = "Waxing" if waxing else "Waning"

    if pct < 1:
        return "New Moon"
    if pct < 40:
        return f"{trend} Crescent"
    if pct < 60:
        return "First Quarter" if waxing else "Last Quarter"
    if pct < 99:
        return f"{trend} Gibbous"
    return "Full Moon"


# =============================================================================
# DESCRIPTIONS
# =============================================================================

def describe_visibility_window(
    up_now: bool,
    rise: Optional[datetime],
    set_: Optional[datetime],
    now: datetime
) -> str:
    """
    One-line description of the body's current visibility window.

    Without a rise or a set in the search window there is no window to
    describe, whatever the body's current altitude.
    """
    if rise is None and set_ is None:
        return "Not visible today"

    if up_now:
        if set_ is None:
            return "Above the horizon all day"
        return f"Visible now, sets in {_hours_between(now, set_):.1f} hours"

    if rise is None:
        return "Not visible today"
    return f"Rises in {_hours_between(now, rise):.1f} hours"


def best_viewing_time(
    body_name: str,
    now: datetime,
    altitude: float,
    events: BodyEvents,
    darkness: DarkWindow,
    tz: tzinfo = timezone.utc
) -> str:
    """
    Recommend when to observe the body.

    Planets are classified as evening, morning or all-night objects by
    whether they are above the horizon during the Sun's next dark window.

    Args:
        body_name: Body name as reported in the tool output
        now: Observation time
        altitude: Current altitude in degrees
        events: Next rise/set/transit of the body
        darkness: Next night for the observer
        tz: Zone used for clock times

    Returns:
        Human-readable recommendation
    """
    if body_name == "Sun":
        return SUN_WARNING

    up_now = altitude > 0
    rise, set_, transit = events.rise, events.set, events.transit

    if rise is None and set_ is None:
        if up_now:
            text = f"Circumpolar: above the horizon throughout the next {SEARCH_WINDOW_DAYS} days"
            if transit is not None:
                text += f". Best viewing: around {_clock(transit, tz)}"
            return text
        return f"Not visible in the next {SEARCH_WINDOW_DAYS * 24} hours"

    if body_name == "Moon":
        if up_now:
            return f"Currently visible! Best viewing: {_clock(transit, tz)} (when highest in sky)"
        if rise is not None:
            return f"Will rise in {_hours_between(now, rise):.1f} hours at {_clock(rise, tz)}"
        return f"Not visible in the next {SEARCH_WINDOW_DAYS * 24} hours"

    sun_down_now = darkness.start is not None and darkness.start <= now

    if up_now and sun_down_now:
        if set_ is None:
            return f"Currently visible! Above the horizon for the rest of the night. Best: {_clock(transit, tz)}"
        hours_remaining = _hours_between(now, set_)
        if hours_remaining > SETTING_SOON_HOURS:
            return f"Currently visible! Observe within the next {hours_remaining:.1f} hours. Best: {_clock(transit, tz)}"
        return f"Currently visible but setting soon (in {hours_remaining:.1f} hours)"

    if darkness.start is None:
        return f"Not visible tonight: the Sun stays up for the next {SEARCH_WINDOW_DAYS * 24} hours"

    dusk = darkness.start
    dawn = darkness.effective_end()
    up_at_dusk = is_up_at(dusk, now, up_now, events)
    up_at_dawn = is_up_at(dawn, now, up_now, events)
    rises_at_night = rise is not None and dusk < rise < dawn

    if up_at_dusk and up_at_dawn:
        return f"All-night object: visible from sunset at {_clock(dusk, tz)} until sunrise at {_clock(dawn, tz)}. Best viewing: around {_clock(transit, tz)}."
    if up_at_dusk:
        return f"Evening object: visible after sunset at {_clock(dusk, tz)} until it sets at {_clock(set_, tz)}. Best viewing: early evening."
    if rises_at_night and up_at_dawn:
        hours_until = _hours_between(now, rise)
        midnight = dusk + (dawn - dusk) / 2
        if rise < midnight:
            return f"Late evening object: Rises at {_clock(rise, tz)} ({hours_until:.1f} hours from now) and stays up until sunrise. Best viewing: around {_clock(transit, tz)}."
        return f"Morning object: Rises at {_clock(rise, tz)} ({hours_until:.1f} hours from now). Best viewing: before sunrise at {_clock(dawn, tz)}."
    if rises_at_night:
        return f"Visible tonight from {_clock(rise, tz)} until it sets at {_clock(set_, tz)}. Best viewing: around {_clock(transit, tz)}."
    if rise is not None:
        return f"Not visible tonight. Rises during daytime at {_clock(rise, tz)}."
    return "Not visible tonight."


# =============================================================================
# EPHEMERIS
# =============================================================================

def _horizontal(body: astro.Body, observer: astro.Observer, t: astro.Time) -> astro.HorizontalCoordinates:
    # Equatorial coordinates of date, corrected for aberration
    equatorial = astro.Equator(body, t, observer, True, True)
    return astro.Horizon(t, observer, equatorial.ra, equatorial.dec, astro.Refraction.Normal)


def _search_rise_set(
    body: astro.Body,
    observer: astro.Observer,
    direction: astro.Direction,
    t: astro.Time
) -> Optional[datetime]:
    """Next rise or set within the search window. Errors are logged and yield None."""
    label = "rise" if direction == astro.Direction.Rise else "set"
    try:
        found = astro.SearchRiseSet(body, observer, direction, t, SEARCH_WINDOW_DAYS)
    except Exception as e:
        logger.error(f"[CELESTIAL] Error calculating {label} for {body.name}: {e}", exc_info=True)
        return None
    return from_astro_time(found) if found is not None else None


def _search_transit(body: astro.Body, observer: astro.Observer, t: astro.Time) -> Optional[datetime]:
    """Next transit (hour angle 0). Errors are logged and yield None."""
    try:
        event = astro.SearchHourAngle(body, observer, 0.0, t, +1)
    except Exception as e:
        logger.error(f"[CELESTIAL] Error calculating transit for {body.name}: {e}", exc_info=True)
        return None
    return from_astro_time(event.time) if event is not None else None


def find_darkness(observer: astro.Observer, now: datetime) -> DarkWindow:
    """Find the next night (Sun below the horizon) for the observer."""
    t = to_astro_time(now)
    sun = _horizontal(astro.Body.Sun, observer, t)

    if sun.altitude <= 0:
        start = now
    else:
        start = _search_rise_set(astro.Body.Sun, observer, astro.Direction.Set, t)

    if start is None:
        return DarkWindow()

    end = _search_rise_set(astro.Body.Sun, observer, astro.Direction.Rise, to_astro_time(start))
    return DarkWindow(start=start, end=end)


def compute_body_info(
    body: astro.Body,
    observer: astro.Observer,
    now: datetime,
    darkness: DarkWindow,
    tz: tzinfo = timezone.utc
) -> CelestialBodyInfo:
    """Compute position, events, brightness and viewing advice for one body."""
    name = body.name
    logger.debug(f"[CELESTIAL] Calculating info for {name}")

    t = to_astro_time(now)
    horizon = _horizontal(body, observer, t)
    is_visible = horizon.altitude > 0

    rise = _search_rise_set(body, observer, astro.Direction.Rise, t)
    set_ = _search_rise_set(body, observer, astro.Direction.Set, t)
    transit = _search_transit(body, observer, t)

    # No rise and no set in the window: report no event times at all
    if rise is None and set_ is None:
        transit = None

    events = BodyEvents(rise=rise, set=set_, transit=transit)

    magnitude = None
    illumination = None
    phase_description = None

    try:
        illum = astro.Illumination(body, t)
        magnitude = illum.mag

        if body == astro.Body.Moon:
            illumination = illum.phase_fraction * 100
            waxing = astro.MoonPhase(t) < 180.0
            phase_description = moon_phase_label(illumination, waxing)
    except Exception as e:
        logger.error(f"[CELESTIAL] Error calculating illumination for {name}: {e}", exc_info=True)

    return CelestialBodyInfo(
        name=name,
        is_visible=is_visible,
        altitude=horizon.altitude,
        azimuth=horizon.azimuth,
        rise_time=format_time(rise, tz),
        set_time=format_time(set_, tz),
        transit_time=format_time(transit, tz),
        magnitude=magnitude,
        illumination=illumination,
        visibility_window=describe_visibility_window(is_visible, rise, set_, now),
        best_viewing_time=best_viewing_time(name, now, horizon.altitude, events, darkness, tz),
        phase_description=phase_description,
    )


# =============================================================================
# REPORT
# =============================================================================

def sort_bodies(bodies: list[CelestialBodyInfo]) -> list[CelestialBodyInfo]:
    """Visible bodies first, then by altitude (highest first)."""
    return sorted(bodies, key=lambda b: (not b.is_visible, -b.altitude))


def build_summary(bodies: list[CelestialBodyInfo]) -> str:
    """One-line summary of the bodies above the horizon, not counting the Sun."""
    visible = [b for b in bodies if b.is_visible and b.name != "Sun"]

    if not visible:
        return "No major celestial bodies currently visible from this location. Check individual objects for their next rise times."

    names = ", ".join(b.name for b in visible)
    return f"Currently {len(visible)} celestial bodies visible: {names}. Check 'bestViewingTime' for optimal observation times."


def calculate_visibility(request: VisibilityRequest) -> VisibilityReport:
    """
    Calculate visibility of the Sun, Moon and planets for an observer.

    Raises ValueError for an unparseable time or unknown time zone.
    A failing rise/set/illumination search for one body never fails the report.
    """
    now = parse_observation_time(request.time)
    tz = resolve_timezone(request.timezone)

    logger.info(
        f"[CELESTIAL] Starting calculation: lat={request.latitude}, lon={request.longitude}, "
        f"elevation={request.elevation}, time={isoformat_utc(now)}"
    )

    observer = astro.Observer(request.latitude, request.longitude, request.elevation)
    darkness = find_darkness(observer, now)

    bodies = sort_bodies([
        compute_body_info(body, observer, now, darkness, tz)
        for body in BODIES
    ])
    summary = build_summary(bodies)

    logger.info(f"[CELESTIAL] Calculation complete: {summary}")

    return VisibilityReport(
        observation_time=isoformat_utc(now),
        timezone=getattr(tz, "key", "UTC"),
        location=Location(
            latitude=request.latitude,
            longitude=request.longitude,
            elevation=request.elevation,
        ),
        celestial_bodies=bodies,
        summary=summary,
    )


def run_visibility_tool(arguments: dict) -> str:
    """
    Execute the visibility tool for the agent.

    Args:
        arguments: Tool arguments as produced by the LLM

    Returns:
        The report as camelCase JSON
    """
    request = VisibilityRequest.model_validate(arguments)
    report = calculate_visibility(request)
    return report.model_dump_json(by_alias=True)


