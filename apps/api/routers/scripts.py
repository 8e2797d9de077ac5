"""Script generation router: batch sessions, next script, screenplay export."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from routers.rate_limit import rate_limit
from services.datasets import DatasetCatalog
from services.document_store import DocumentStore, get_document_store
from services.llm_client import ScriptCompletionClient
from services.screenplay import convert_to_screenplay
from services.script_batches import ScriptBatchOrchestrator
from services.script_generation import DEFAULT_GENRE

router = APIRouter()
logger = logging.getLogger(__name__)


class BatchRequest(BaseModel):
    topic: str
    genre: Optional[str] = DEFAULT_GENRE


class ExportRequest(BaseModel):
    script: Dict[str, Any] = Field(default_factory=dict)


def get_dataset_catalog(
    request: Request,
    store: DocumentStore = Depends(get_document_store),
) -> DatasetCatalog:
    """One catalog per application so the pool cache outlives a request."""
    catalog = getattr(request.app.state, "dataset_catalog", None)
    if catalog is None:
        catalog = DatasetCatalog(store)
        request.app.state.dataset_catalog = catalog
    return catalog


def get_script_orchestrator(
    request: Request,
    store: DocumentStore = Depends(get_document_store),
    catalog: DatasetCatalog = Depends(get_dataset_catalog),
) -> ScriptBatchOrchestrator:
    orchestrator = getattr(request.app.state, "script_orchestrator", None)
    if orchestrator is None:
        orchestrator = ScriptBatchOrchestrator(
            store,
            catalog=catalog,
            completion_client=ScriptCompletionClient(),
        )
        request.app.state.script_orchestrator = orchestrator
    return orchestrator


@router.post("/batch")
async def start_batch(
    request: BatchRequest,
    _rate_limit: None = Depends(rate_limit("script_batch", limit=30, window_seconds=60)),
    orchestrator: ScriptBatchOrchestrator = Depends(get_script_orchestrator),
):
    session = await orchestrator.open_session(request.topic, request.genre)
    logger.info("Opened script session %s (%s)", session.session_id, session.batch.source)
    return session.snapshot()


@router.post("/{session_id}/next")
async def next_script(
    session_id: str,
    _rate_limit: None = Depends(rate_limit("script_next", limit=120, window_seconds=60)),
    orchestrator: ScriptBatchOrchestrator = Depends(get_script_orchestrator),
):
    session = orchestrator.get_session(session_id)
    await session.advance()
    return session.snapshot()


@router.post("/export", response_class=PlainTextResponse)
async def export_script(request: ExportRequest):
    return convert_to_screenplay(request.script)
