import asyncio
import logging
import random
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

from pydantic import TypeAdapter, ValidationError

from campus_safety import config
from campus_safety.constants import CAMPUS_LOCATIONS, SOS_INCIDENT_TYPE
from campus_safety.models import (
    EmergencyLog,
    Incident,
    IncidentStatus,
    Landmark,
    Severity,
)

logger = logging.getLogger(__name__)

INCIDENTS_KEY = "incidents"
EMERGENCY_LOGS_KEY = "emergency_logs"

_incident_list = TypeAdapter(List[Incident])
_log_list = TypeAdapter(List[EmergencyLog])


def seed_incidents(landmarks: Sequence[Landmark], now: Optional[datetime] = None) -> List[Incident]:
    now = now or datetime.now(timezone.utc)
    return [
        Incident(
            id=f"seed-{i}",
            type="Surveillance Scan",
            description=f"Baseline established at {landmark.name}.",
            timestamp=now - timedelta(seconds=random.random() * 24 * 3600),
            location=landmark.coords,
            location_name=landmark.name,
            severity=Severity.LOW,
            analysis="Initial system scan complete.",
            status="confirmed",
        )
        for i, landmark in enumerate(landmarks)
    ]


def promote_log(log: EmergencyLog) -> Incident:
    """Derive the CRITICAL incident every transmitted SOS log produces."""
    return Incident(
        id=f"sos-{log.id}",
        type=SOS_INCIDENT_TYPE,
        description=log.message,
        timestamp=log.timestamp,
        location=log.location,
        location_name=log.building or "Unknown Building",
        severity=Severity.CRITICAL,
        analysis="User-initiated emergency broadcast. Tactical response required.",
        status="pending",
    )


class IncidentStore:
    """Incidents and emergency logs persisted as two JSON blobs in a key-value store.

    Every mutation reads the whole collection, transforms it and writes it back.
    There is no locking: with several concurrent callers the last writer wins.
    """

    def __init__(
        self,
        kv,
        key_prefix: str = config.STORE_KEY_PREFIX,
        latency_ms: int = config.STORE_LATENCY_MS,
        landmarks: Sequence[Landmark] = CAMPUS_LOCATIONS,
    ):
        self.kv = kv
        self.latency = latency_ms / 1000.0
        self.landmarks = list(landmarks)
        self.incidents_key = f"{key_prefix}{INCIDENTS_KEY}"
        self.logs_key = f"{key_prefix}{EMERGENCY_LOGS_KEY}"

    async def _delay(self):
        await asyncio.sleep(self.latency)

    # Raw blob access

    def _read_incidents(self) -> Optional[List[Incident]]:
        stored = self.kv.get(self.incidents_key)
        if not stored:
            return None
        try:
            return _incident_list.validate_json(stored)
        except ValidationError as e:
            logger.warning(f"Discarding corrupt incidents blob: {e.error_count()} errors")
            return None

    def _read_logs(self) -> List[EmergencyLog]:
        stored = self.kv.get(self.logs_key)
        if not stored:
            return []
        try:
            return _log_list.validate_json(stored)
        except ValidationError as e:
            logger.warning(f"Discarding corrupt emergency log blob: {e.error_count()} errors")
            return []

    def _write(self, key: str, blob: bytes) -> bool:
        # Storage failures stay inside the store; the write is dropped
        try:
            self.kv.set(key, blob.decode())
        except OSError as e:
            logger.error(f"Failed to persist '{key}': {str(e)}", exc_info=True)
            return False
        return True

    def _write_incidents(self, incidents: List[Incident]) -> bool:
        return self._write(self.incidents_key, _incident_list.dump_json(incidents, by_alias=True))

    def _write_logs(self, logs: List[EmergencyLog]) -> bool:
        return self._write(self.logs_key, _log_list.dump_json(logs, by_alias=True))

    async def save_incidents(self, incidents: List[Incident]) -> None:
        await self._delay()
        self._write_incidents(incidents)

    # Incidents

    async def list_incidents(self) -> List[Incident]:
        await self._delay()
        incidents = self._read_incidents()
        if incidents is None:
            incidents = seed_incidents(self.landmarks)
            logger.info(f"Seeded {len(incidents)} baseline incidents")
            await self.save_incidents(incidents)
            return incidents
        return [i if i.status else i.model_copy(update={"status": "pending"}) for i in incidents]

    async def add_incident(self, incident: Incident) -> None:
        current = await self.list_incidents()
        if not incident.status:
            incident = incident.model_copy(update={"status": "pending"})
        # Re-adding an existing id replaces the old record
        current = [i for i in current if i.id != incident.id]
        current.insert(0, incident)
        await self.save_incidents(current)

    async def set_incident_status(self, incident_id: str, status: IncidentStatus) -> None:
        # Any transition is accepted, including resolved -> pending
        current = await self.list_incidents()
        updated = [
            i.model_copy(update={"status": status}) if i.id == incident_id else i
            for i in current
        ]
        await self.save_incidents(updated)

    async def delete_incident(self, incident_id: str) -> None:
        current = await self.list_incidents()
        await self.save_incidents([i for i in current if i.id != incident_id])

    # Emergency logs

    async def list_emergency_logs(self) -> List[EmergencyLog]:
        await self._delay()
        return self._read_logs()

    async def add_emergency_log(self, log: EmergencyLog) -> None:
        logs = await self.list_emergency_logs()
        incidents = await self.list_incidents()
        promoted = promote_log(log)
        logs = [l for l in logs if l.id != log.id]
        logs.insert(0, log)
        incidents = [i for i in incidents if i.id != promoted.id]
        incidents.insert(0, promoted)
        await self._delay()
        # No suspension point between the two writes
        if not self._write_logs(logs):
            return
        self._write_incidents(incidents)
        logger.info(f"Emergency log {log.id} stored and promoted to incident sos-{log.id}")
