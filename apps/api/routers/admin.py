"""Admin router: dataset bulk merge, generator mode, usage totals."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from routers.auth_scope import require_admin
from routers.rate_limit import rate_limit
from routers.scripts import get_dataset_catalog
from services.categories import require_category
from services.dataset_merge import MergeMode, merge_dataset_service
from services.datasets import DatasetCatalog
from services.document_store import DocumentStore, get_document_store
from services.script_batches import read_generator_settings, update_generator_settings
from services.session_token import SessionClaims
from services.usage_tracker import usage_tracker

router = APIRouter()


class DatasetMergeRequest(BaseModel):
    category: str
    mode: str = MergeMode.SMART.value
    data: Any


class GeneratorSettingsRequest(BaseModel):
    use_ai: bool


@router.post("/datasets/merge")
async def merge_dataset(
    request: DatasetMergeRequest,
    _rate_limit: None = Depends(rate_limit("admin_merge", limit=30, window_seconds=3600)),
    _admin: SessionClaims = Depends(require_admin),
    store: DocumentStore = Depends(get_document_store),
    catalog: DatasetCatalog = Depends(get_dataset_catalog),
):
    result = await merge_dataset_service(
        store=store,
        category=request.category,
        mode=request.mode,
        data=request.data,
    )
    catalog.invalidate()
    return result


@router.get("/datasets/{category}")
async def get_dataset(
    category: str,
    _admin: SessionClaims = Depends(require_admin),
    store: DocumentStore = Depends(get_document_store),
):
    resolved = require_category(category)
    items = await store.get_dataset(resolved)
    return {"category": resolved.value, "totalItems": len(items), "data": items}


@router.get("/settings/generator")
async def get_generator_settings(
    _admin: SessionClaims = Depends(require_admin),
    store: DocumentStore = Depends(get_document_store),
):
    return await read_generator_settings(store)


@router.put("/settings/generator")
async def put_generator_settings(
    request: GeneratorSettingsRequest,
    _admin: SessionClaims = Depends(require_admin),
    store: DocumentStore = Depends(get_document_store),
):
    return await update_generator_settings(store, request.use_ai)


@router.get("/usage")
async def get_usage(_admin: SessionClaims = Depends(require_admin)):
    return usage_tracker.summary()


@router.post("/usage/reset")
async def reset_usage(admin: SessionClaims = Depends(require_admin)):
    usage_tracker.reset()
    return {"reset": True, "by": admin.email, **usage_tracker.summary()}
