from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Response
from pydantic import BaseModel, Field, field_validator

from .config import load_metrics_config
from .repository import (
    COLLECTIONS,
    InMemoryRecordStore,
    RecordStore,
    RepositoryConfig,
    StoreUnavailableError,
    build_repository_from_env,
)
from .service import DashboardMetricsService

logger = logging.getLogger(__name__)

load_dotenv()

app = FastAPI(title="Backoffice Operations Metrics API", version="0.1.0")
config = load_metrics_config()
repository: Optional[RecordStore] = build_repository_from_env(RepositoryConfig(database_url=config.database_url))


class PreviewRequest(BaseModel):
    now: Optional[datetime] = None
    collections: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)

    @field_validator("collections")
    @classmethod
    def _known_collections(cls, collections: Dict[str, List[Dict[str, Any]]]) -> Dict[str, List[Dict[str, Any]]]:
        unknown = sorted(set(collections) - set(COLLECTIONS))
        if unknown:
            raise ValueError(f"unknown collections: {', '.join(unknown)}")
        return collections


@app.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/admin/dashboard/metrics")
async def dashboard_metrics(response: Response) -> Dict[str, Any]:
    if repository is None:
        raise HTTPException(
            status_code=500,
            detail="OPS_METRICS_DATABASE_URL is not configured; use the preview endpoint for ad-hoc data.",
        )
    return await _build(repository, response)


@app.post("/admin/dashboard/metrics/preview")
async def dashboard_metrics_preview(request: PreviewRequest, response: Response) -> Dict[str, Any]:
    store = InMemoryRecordStore(request.collections)
    return await _build(store, response, now=request.now)


async def _build(store: RecordStore, response: Response, now: Optional[datetime] = None) -> Dict[str, Any]:
    service = DashboardMetricsService(store, config=config)
    try:
        snapshot = await service.build(now=now)
    except StoreUnavailableError as exc:
        logger.exception("Dashboard snapshot failed: %s", exc)
        raise HTTPException(status_code=503, detail="Dashboard metrics are temporarily unavailable.") from exc
    response.headers["Cache-Control"] = snapshot.cache_control or config.cache_control
    return snapshot.as_dict()
