import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import parse_qs

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from campus_safety import config
from campus_safety.analysis import (
    SafetyAnalysisPipeline,
    agent_status,
    filter_recent,
    refresh_agents,
)
from campus_safety.constants import CAMPUS_CENTER, CAMPUS_LOCATIONS
from campus_safety.db import IncidentStore
from campus_safety.errors import OracleError
from campus_safety.models import (
    AnalyzeRequest,
    ChatReply,
    ChatRequest,
    DraftRequest,
    DraftResponse,
    EmergencyLog,
    Incident,
    IncidentAnalysis,
    IncidentCreate,
    IncidentStatus,
    SafetySummaryRequest,
    SafetySummaryResponse,
    TransmitRequest,
    UpdateStatus,
)
from campus_safety.sos import EmergencyDraftFlow

logger = logging.getLogger(__name__)

# Router configuration
router = APIRouter(
    prefix="/v1",
    tags=["campus-safety"],
    responses={
        status.HTTP_502_BAD_GATEWAY: {"description": "Language model unavailable"},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"description": "Server Error"}
    }
)


# Dependencies wired by create_app()
def get_store(request: Request) -> IncidentStore:
    return request.app.state.store


def get_analysis(request: Request) -> SafetyAnalysisPipeline:
    return request.app.state.analysis


def get_draft_flow(request: Request) -> EmergencyDraftFlow:
    return request.app.state.draft_flow


def window(hours: Optional[float]) -> float:
    return hours if hours is not None else config.DEFAULT_WINDOW_HOURS


def landmark_coords(name: str):
    for landmark in CAMPUS_LOCATIONS:
        if landmark.name.lower() == name.strip().lower():
            return landmark.coords
    return CAMPUS_CENTER


# Incident feed

@router.get(
    "/incidents",
    response_model=List[Incident],
    status_code=status.HTTP_200_OK,
    description="List incidents, most recent first, optionally limited to the last N hours or one status"
)
async def list_incidents(
    hours: Optional[float] = None,
    status_filter: Optional[IncidentStatus] = Query(default=None, alias="status"),
    store: IncidentStore = Depends(get_store),
):
    incidents = await store.list_incidents()
    if hours is not None:
        incidents = filter_recent(incidents, hours)
    if status_filter is not None:
        incidents = [i for i in incidents if i.status == status_filter]
    return incidents


@router.post(
    "/create_incident",
    response_model=Incident,
    status_code=status.HTTP_201_CREATED,
    description="Create a new incident"
)
async def create_incident(body: IncidentCreate, store: IncidentStore = Depends(get_store)):
    fields = body.model_dump()
    # Generate unique ID and timestamp if not provided
    fields["id"] = fields["id"] or str(uuid.uuid4())
    fields["timestamp"] = fields["timestamp"] or datetime.now(timezone.utc)
    incident = Incident(**fields)
    await store.add_incident(incident)
    return incident.model_copy(update={"status": incident.status or "pending"})


@router.put("/update-status", status_code=status.HTTP_200_OK)
async def update_status(status_data: UpdateStatus, store: IncidentStore = Depends(get_store)):
    # Unknown ids are a silent no-op
    await store.set_incident_status(status_data.incident_id, status_data.status)
    return {"message": f"Incident {status_data.incident_id} status updated to {status_data.status}"}


@router.delete("/incidents/{incident_id}", status_code=status.HTTP_200_OK)
async def delete_incident(incident_id: str, store: IncidentStore = Depends(get_store)):
    await store.delete_incident(incident_id)
    return {"message": f"Incident {incident_id} deleted successfully"}


@router.get("/emergency-logs", response_model=List[EmergencyLog], status_code=status.HTTP_200_OK)
async def list_emergency_logs(store: IncidentStore = Depends(get_store)):
    return await store.list_emergency_logs()


# Analysis

@router.post("/safety-summary", response_model=SafetySummaryResponse)
async def safety_summary(
    body: SafetySummaryRequest,
    request: Request,
    store: IncidentStore = Depends(get_store),
    analysis: SafetyAnalysisPipeline = Depends(get_analysis),
):
    incidents = filter_recent(await store.list_incidents(), window(body.hours))
    try:
        safety = await analysis.summarize(incidents, body.location)
    except OracleError as e:
        previous = request.app.state.last_safety_status
        logger.error(f"Safety analysis failed: {str(e)}", exc_info=True)
        if previous is None:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=f"Safety analysis failed: {str(e)}"
            )
        return previous.model_copy(update={"stale": True})

    response = SafetySummaryResponse(
        status=safety,
        agent_status=agent_status(safety.score),
        agents=refresh_agents(request.app.state.agents, safety),
        incident_count=len(incidents),
    )
    request.app.state.agents = response.agents
    request.app.state.last_safety_status = response
    return response


@router.post("/analyze", response_model=IncidentAnalysis)
async def analyze(body: AnalyzeRequest, analysis: SafetyAnalysisPipeline = Depends(get_analysis)):
    try:
        return await analysis.analyze_incident(body.description)
    except OracleError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Analysis failed: {str(e)}")


@router.post("/chat", response_model=ChatReply)
async def chat(
    body: ChatRequest,
    store: IncidentStore = Depends(get_store),
    analysis: SafetyAnalysisPipeline = Depends(get_analysis),
):
    incidents = await store.list_incidents()
    try:
        return await analysis.chat(body.message, body.location, body.directive, incidents)
    except OracleError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Chat failed: {str(e)}")


# SOS

@router.post("/sos/draft", response_model=DraftResponse)
async def sos_draft(
    body: DraftRequest,
    store: IncidentStore = Depends(get_store),
    draft_flow: EmergencyDraftFlow = Depends(get_draft_flow),
):
    incidents = filter_recent(await store.list_incidents(), window(body.hours))
    draft = await draft_flow.draft(
        incidents,
        body.location,
        CAMPUS_LOCATIONS,
        extra_details=body.extra_details,
        directive=body.directive,
        selected_building=body.selected_building,
    )
    return DraftResponse(draft=draft)


@router.post("/sos/transmit", response_model=EmergencyLog, status_code=status.HTTP_201_CREATED)
async def sos_transmit(body: TransmitRequest, draft_flow: EmergencyDraftFlow = Depends(get_draft_flow)):
    if not body.message.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="message cannot be empty")
    return await draft_flow.transmit(body.message, body.location, body.building, body.operator_details)


# SMS intake

@router.post("/post-sms", response_model=Incident, status_code=status.HTTP_201_CREATED)
async def post_sms(
    request: Request,
    store: IncidentStore = Depends(get_store),
    analysis: SafetyAnalysisPipeline = Depends(get_analysis),
):
    # Parse SMS body parameters
    params = parse_qs((await request.body()).decode("utf-8"))
    description = params.get("Body", [""])[0].strip()
    contactno = params.get("From", [""])[0]
    if not description:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Body missing in SMS payload")

    try:
        output = await analysis.analyze_incident(description)
    except OracleError as e:
        logger.error(f"Error processing incident: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to process incident: {str(e)}"
        )

    incident = Incident(
        id=f"sms-{uuid.uuid4()}",
        type=output.type,
        description=description,
        timestamp=datetime.now(timezone.utc),
        location=landmark_coords(output.location_name),
        location_name=output.location_name,
        severity=output.severity,
        analysis=output.analysis,
        uri=f"tel:{contactno}" if contactno else None,
        status="pending",
    )
    await store.add_incident(incident)
    logger.info(f"SMS incident {incident.id} recorded ({incident.severity.value})")
    return incident
