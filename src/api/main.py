"""
FILE: src/api/main.py
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.api.observability import setup_observability
from src.api.persistence_profile import validate_persistence_profile_guardrails
from src.api.routers.proposals import router as proposal_lifecycle_router


@asynccontextmanager
async def _app_lifespan(_app: FastAPI):
    validate_persistence_profile_guardrails()
    yield


app = FastAPI(
    title="Clinic Proposal Lifecycle API",
    version="0.1.0",
    description=(
        "Role- and region-scoped sales proposal workflow for clinic field teams.\n\n"
        "Proposals move `pending -> approved | rejected | expired`, and approved proposals "
        "continue through `contract_received -> in_transfer -> delivered`."
    ),
    openapi_tags=[
        {
            "name": "Proposal Lifecycle",
            "description": (
                "Proposal creation, visibility-scoped reads, transitions, dashboards, "
                "and supportability endpoints."
            ),
        },
        {
            "name": "Health",
            "description": "Liveness probe.",
        },
    ],
    lifespan=_app_lifespan,
)

setup_observability(app)
logger = logging.getLogger(__name__)

app.include_router(proposal_lifecycle_router)


@app.exception_handler(Exception)
async def unhandled_exception_to_problem_details(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception while serving request", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        media_type="application/problem+json",
        content={
            "type": "about:blank",
            "title": "Internal Server Error",
            "status": 500,
            "detail": "An unexpected error occurred.",
            "instance": str(request.url.path),
        },
    )


@app.get("/health", tags=["Health"], summary="Liveness probe")
def health() -> dict[str, str]:
    return {"status": "ok"}
