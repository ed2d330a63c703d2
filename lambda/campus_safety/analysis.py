import logging
import random
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

from campus_safety import config
from campus_safety.constants import AGENT_ALERT_THRESHOLD
from campus_safety.errors import MalformedResponseError
from campus_safety.models import (
    Agent,
    ChatReply,
    Incident,
    IncidentAnalysis,
    LatLng,
    SafetyStatus,
)
from campus_safety.retry import safe_api_call

logger = logging.getLogger(__name__)

DEFAULT_DIRECTIVE = "You are a campus safety reasoning core."


def baseline_status() -> SafetyStatus:
    return SafetyStatus(
        score=90,
        summary="Baseline safety established.",
        recommendations=["Maintain vigilance"],
        reasoning_steps=["Analyzed local feed", "Checked building statuses"],
    )


def filter_recent(
    incidents: Sequence[Incident], hours: float, now: Optional[datetime] = None
) -> List[Incident]:
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(hours=hours)
    return [i for i in incidents if i.timestamp > cutoff]


def agent_status(score: float) -> str:
    return "alert" if score < AGENT_ALERT_THRESHOLD else "active"


def default_agents() -> List[Agent]:
    return [
        Agent(
            id="default-1",
            name="Central Watch",
            objective="Oversee UH campus safety stability.",
            last_insight="Scanning UH sectors. Baseline established.",
        )
    ]


def refresh_agents(agents: Sequence[Agent], status: SafetyStatus) -> List[Agent]:
    """Return the roster with each agent's status and insight taken from ``status``."""
    refreshed = []
    for agent in agents:
        insight = random.choice(status.reasoning_steps) if status.reasoning_steps else agent.last_insight
        refreshed.append(
            agent.model_copy(update={"status": agent_status(status.score), "last_insight": insight})
        )
    return refreshed


def incident_line(incident: Incident) -> str:
    return (
        f"[{incident.severity.value}] {incident.status or 'pending'} {incident.type} "
        f"at {incident.location_name}: {incident.description}"
    )


def format_location(location: LatLng) -> str:
    return f"{location[0]}, {location[1]}"


class SafetyAnalysisPipeline:
    """Turns a window of incidents into oracle prompts and typed results."""

    def __init__(
        self,
        oracle,
        retries: int = config.ORACLE_RETRIES,
        initial_delay: float = config.ORACLE_INITIAL_DELAY,
    ):
        self.oracle = oracle
        self.retries = retries
        self.initial_delay = initial_delay

    async def _call(self, fn):
        return await safe_api_call(fn, retries=self.retries, delay=self.initial_delay)

    def build_summary_prompt(self, incidents: Sequence[Incident], location: LatLng) -> str:
        context = "\n".join(
            incident_line(i) for i in incidents if not i.is_verified_resource
        )
        return (
            f"CURRENT TACTICAL DATABASE CONTEXT:\n{context}\n\n"
            f"USER LOCATION: [{format_location(location)}]\n\n"
            "TASK: Provide a real-time safety score (0-100), a concise summary, "
            "3 actionable recommendations, and 4 internal reasoning steps for this tactical profile."
        )

    async def summarize(self, incidents: Sequence[Incident], location: LatLng) -> SafetyStatus:
        """Score the given incidents for ``location``.

        Transport failures propagate once retries are spent. An unparsable
        answer degrades to the baseline status.
        """
        prompt = self.build_summary_prompt(incidents, location)
        try:
            return await self._call(lambda: self.oracle.summarize(prompt))
        except MalformedResponseError as e:
            logger.warning(f"Safety summary unparsable, using baseline: {e}")
            return baseline_status()

    async def analyze_incident(self, description: str) -> IncidentAnalysis:
        prompt = (
            f'Analyze this campus incident: "{description}". '
            "Classify its severity and provide a brief safety implication. "
            "Also name the incident type and the place it happened, if mentioned."
        )
        try:
            return await self._call(lambda: self.oracle.analyze(prompt))
        except MalformedResponseError as e:
            logger.warning(f"Incident analysis unparsable, using default: {e}")
            return IncidentAnalysis()

    def build_chat_context(
        self,
        location: LatLng,
        directive: Optional[str] = None,
        incidents: Optional[Sequence[Incident]] = None,
    ) -> str:
        recent = "\n".join(incident_line(i) for i in (incidents or [])[:5])
        return (
            f"{directive or DEFAULT_DIRECTIVE}\n\n"
            f"TACTICAL DATABASE CONTEXT:\n{recent or 'No recent incidents.'}\n\n"
            f"Current User Location: {format_location(location)}\n\n"
            "INSTRUCTIONS:\n"
            "- Use the TACTICAL DATABASE CONTEXT to answer queries about safety.\n"
            "- If a user asks about risk, reference recent incidents."
        )

    async def chat(
        self,
        message: str,
        location: LatLng,
        directive: Optional[str] = None,
        incidents: Optional[Sequence[Incident]] = None,
    ) -> ChatReply:
        context = self.build_chat_context(location, directive, incidents)
        try:
            reply = await self._call(lambda: self.oracle.chat(message, context))
        except MalformedResponseError as e:
            # Plain prose instead of JSON is still a usable answer
            reply = ChatReply(text=e.raw.strip())
        if not reply.text:
            reply = ChatReply(
                text="Reasoning link active. Processing spatial request.", links=reply.links
            )
        return reply
