import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

from campus_safety import config
from campus_safety.analysis import format_location
from campus_safety.constants import SOS_MAX_LENGTH
from campus_safety.models import EmergencyLog, Incident, Landmark, LatLng
from campus_safety.retry import safe_api_call

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_INSTRUCTION = "You are an emergency response coordinator assistant."
EMPTY_DRAFT = "UH SOS: Urgent assistance requested at my current location."
UNKNOWN_THREAT = "Unknown Tactical Threat"


def primary_threat(incidents: Sequence[Incident]) -> Optional[Incident]:
    """Most severe incident; ties go to the earliest in sequence order."""
    if not incidents:
        return None
    return min(incidents, key=lambda i: i.severity.rank)


def fallback_draft(
    location: LatLng,
    extra_details: Optional[str] = None,
    selected_building: Optional[str] = None,
) -> str:
    place = selected_building or f"[{format_location(location)}]"
    parts = [f"UH SOS: EMERGENCY at {place}."]
    if extra_details and extra_details.strip():
        parts.append(f"{extra_details.strip()}.")
    parts.append("NEED IMMEDIATE ASSISTANCE.")
    return " ".join(parts)[:SOS_MAX_LENGTH]


class EmergencyDraftFlow:
    def __init__(
        self,
        oracle,
        store,
        retries: int = config.ORACLE_RETRIES,
        initial_delay: float = config.ORACLE_INITIAL_DELAY,
    ):
        self.oracle = oracle
        self.store = store
        self.retries = retries
        self.initial_delay = initial_delay

    def build_prompt(
        self,
        incidents: Sequence[Incident],
        location: LatLng,
        landmarks: Sequence[Landmark],
        extra_details: Optional[str] = None,
        selected_building: Optional[str] = None,
    ) -> str:
        threat = primary_threat(incidents)
        threat_text = f"{threat.type} at {threat.location_name}" if threat else UNKNOWN_THREAT
        landmark_json = json.dumps([lm.model_dump(mode="json") for lm in landmarks])

        lines = [
            "Draft a tactical SOS SMS for UH Police.",
            "",
            f"CURRENT USER COORDS: {format_location(location)}",
            f"MOST CRITICAL THREAT IN DB: {threat_text}",
            f"CAMPUS LANDMARKS: {landmark_json}",
        ]
        if selected_building:
            lines.append(f"USER-SELECTED BUILDING: {selected_building}")
        if extra_details:
            lines.append(f"EXTRA OPERATOR DETAILS: {extra_details}")
        lines += [
            "",
            "INSTRUCTIONS:",
            "1. Priority: If USER-SELECTED BUILDING is provided, use it.",
            "2. Otherwise, identify building from CAMPUS LANDMARKS closest to USER COORDS.",
            '3. Format: "UH SOS: [Building] - [Threat]. [Details]. Coords: [User Coords]. IMMEDIATE HELP REQ."',
            f"4. Max {SOS_MAX_LENGTH} chars. Cold, tactical tone.",
        ]
        return "\n".join(lines)

    async def draft(
        self,
        incidents: Sequence[Incident],
        location: LatLng,
        landmarks: Sequence[Landmark],
        extra_details: Optional[str] = None,
        directive: Optional[str] = None,
        selected_building: Optional[str] = None,
    ) -> str:
        prompt = self.build_prompt(incidents, location, landmarks, extra_details, selected_building)
        system = directive or DEFAULT_SYSTEM_INSTRUCTION
        try:
            text = await safe_api_call(
                lambda: self.oracle.draft(prompt, system),
                retries=self.retries,
                delay=self.initial_delay,
            )
        except Exception as e:
            logger.warning(f"SOS draft failed, using local template: {e}", exc_info=True)
            return fallback_draft(location, extra_details, selected_building)
        return ((text or "").strip() or EMPTY_DRAFT)[:SOS_MAX_LENGTH]

    async def transmit(
        self,
        message: str,
        location: LatLng,
        building: Optional[str] = None,
        operator_details: Optional[str] = None,
    ) -> EmergencyLog:
        log = EmergencyLog(
            id=f"log-{uuid.uuid4()}",
            timestamp=datetime.now(timezone.utc),
            message=message,
            location=location,
            building=building or "Detected Proximity",
            operator_details=operator_details,
        )
        await self.store.add_emergency_log(log)
        logger.info(f"SOS transmitted from {log.building}: {message}")
        return log
