import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from mangum import Mangum

from campus_safety import config
from campus_safety.analysis import SafetyAnalysisPipeline, default_agents
from campus_safety.db import IncidentStore
from campus_safety.endpoints import router as api_router
from campus_safety.oracle import BedrockOracle
from campus_safety.sos import EmergencyDraftFlow
from campus_safety.storage import FileKeyValueStore

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)


def create_app(store: IncidentStore = None, oracle=None) -> FastAPI:
    """Build the API around one store and one oracle shared by every request."""
    store = store or IncidentStore(FileKeyValueStore(config.STORE_DIR))
    oracle = oracle or BedrockOracle()

    # FastAPI app configuration
    app = FastAPI(
        title="Campus Safety API",
        description="Incident feed, safety analysis and SOS escalation for the campus dashboard",
        version="0.1.0"
    )

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.store = store
    app.state.analysis = SafetyAnalysisPipeline(oracle)
    app.state.draft_flow = EmergencyDraftFlow(oracle, store)
    app.state.last_safety_status = None
    app.state.agents = default_agents()

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.url.path}: {str(exc)}", exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": f"Unexpected error: {str(exc)}"})

    @app.get("/health")
    async def health_check() -> dict:
        return {"status": "ok"}

    # Include router from endpoints.py
    app.include_router(api_router)
    return app


app = create_app()

lambda_handler = Mangum(app, lifespan="off", api_gateway_base_path=config.API_NAME)
