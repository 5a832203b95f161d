"""
status.py
---------
Purpose:
    Read surface for recorded status updates.

    - GET /            overview of every subscribed contact (HTML)
    - GET /{jid}       full history of one contact (HTML)
    - GET /api/status  and GET /api/status/{jid}: the same data as JSON

    Unknown contacts without history are 404; store failures are 500.
"""

from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from whatsup.db.helpers import DatabaseError
from whatsup.infrastructure.observability.logging import get_logger
from whatsup.models.api.status_response import (
    ContactStatusResponse,
    OverviewResponse,
    StatusMessageResponse,
)
from whatsup.models.domain.contact_domain import ContactOverview, StatusMessage
from whatsup.services.context import ServiceContext
from whatsup.services.read_model_service import ContactNotFoundError, ReadModelService
from whatsup.utils.jid import InvalidJID, normalize_jid

router = APIRouter()
logger = get_logger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


def get_context(request: Request) -> ServiceContext:
    return request.app.state.context


def get_read_model(context: ServiceContext = Depends(get_context)) -> ReadModelService:
    return ReadModelService(context)


async def _load_overview(read_model: ReadModelService) -> list[ContactOverview]:
    try:
        return await read_model.overview()
    except DatabaseError as e:
        logger.error("Overview query failed", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to load status updates"
        ) from e


async def _load_history(read_model: ReadModelService, raw_jid: str) -> tuple[str, list[StatusMessage]]:
    try:
        jid = normalize_jid(raw_jid)
    except InvalidJID as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contact not found") from e

    try:
        return jid, await read_model.history(jid)
    except ContactNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contact not found") from e
    except DatabaseError as e:
        logger.error("History query failed", jid=jid, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to load status updates"
        ) from e


@router.get("/api/status", response_model=OverviewResponse)
async def overview_json(read_model: ReadModelService = Depends(get_read_model)):
    return OverviewResponse.from_domain(await _load_overview(read_model))


@router.get("/api/status/{jid}", response_model=ContactStatusResponse)
async def history_json(jid: str, read_model: ReadModelService = Depends(get_read_model)):
    jid, messages = await _load_history(read_model, jid)
    return ContactStatusResponse(
        jid=jid, messages=[StatusMessageResponse.from_domain(m) for m in messages]
    )


@router.get("/", response_class=HTMLResponse)
async def overview_page(request: Request, read_model: ReadModelService = Depends(get_read_model)):
    groups = await _load_overview(read_model)
    return templates.TemplateResponse(request, "overview.html", {"groups": groups})


@router.get("/{jid}", response_class=HTMLResponse)
async def history_page(
    request: Request, jid: str, read_model: ReadModelService = Depends(get_read_model)
):
    jid, messages = await _load_history(read_model, jid)
    return templates.TemplateResponse(request, "history.html", {"jid": jid, "messages": messages})
