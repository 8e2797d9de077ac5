"""Community contributions router."""

from typing import List, Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from routers.rate_limit import rate_limit
from routers.scripts import get_dataset_catalog
from services.contributions import submit_contribution
from services.datasets import DatasetCatalog
from services.document_store import DocumentStore, get_document_store

router = APIRouter()


class ContributionRequest(BaseModel):
    type: str = "dialogue"
    content: Optional[str] = None
    situation: Optional[str] = None
    tags: Union[str, List[str], None] = None


@router.post("", status_code=201)
async def create_contribution(
    request: ContributionRequest,
    _rate_limit: None = Depends(rate_limit("contributions", limit=20, window_seconds=3600)),
    store: DocumentStore = Depends(get_document_store),
    catalog: DatasetCatalog = Depends(get_dataset_catalog),
):
    contribution = await submit_contribution(
        store=store,
        type=request.type,
        content=request.content,
        situation=request.situation,
        tags=request.tags,
    )
    catalog.invalidate()
    return {"contribution": contribution, "message": "Thanks for contributing!"}
