# main.py
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from dotenv import load_dotenv
from fastapi import Body, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

BASE_DIR = Path(__file__).resolve().parent

# Load .env EARLY (before the settings below are read)
load_dotenv(BASE_DIR / ".env")

from .app import conversation_api
from .app.error_messages import catalog_rows_rejected_message
from .app.pricing import PricingConfig
from .app.services.estimate_service import (
    EstimateServiceContext,
    ServiceError,
    catalog_stats,
    run_estimate,
)
from .shared.normalize import load_transcription_fixes
from .store import CatalogFileError, CatalogStore, read_catalog_file

# ---------- Logging ----------
logger = logging.getLogger("rostkalkyl.api")
if not logging.getLogger().handlers:
    logging.basicConfig(level=logging.INFO)

# ---------- Pfade & ENV ----------
DEFAULT_CATALOG_PATH = BASE_DIR / "data" / "meps_catalog.yaml"
CATALOG_PATH = Path(os.getenv("CATALOG_PATH", str(DEFAULT_CATALOG_PATH)))
DEBUG = os.getenv("DEBUG", "0") == "1"

_DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
]
_origins_env = os.getenv("FRONTEND_ORIGINS", "")
ALLOWED_ORIGINS = (
    [origin.strip() for origin in _origins_env.split(",") if origin.strip()]
    if _origins_env.strip()
    else _DEFAULT_ALLOWED_ORIGINS
)


def _load_catalog(store: CatalogStore, path: Path) -> List[Dict[str, Any]]:
    try:
        source = read_catalog_file(path)
    except CatalogFileError as exc:
        logger.error("Catalog %s could not be read: %s", path, exc)
        return [{"row": 0, "field": None, "message": str(exc)}]
    errors = store.load(source)
    if errors:
        logger.warning("%s", catalog_rows_rejected_message(errors))
    return errors


def build_service_context(
    catalog_path: Optional[Path] = None,
    config: Optional[PricingConfig] = None,
    debug: bool = DEBUG,
) -> EstimateServiceContext:
    path = catalog_path or CATALOG_PATH
    store = CatalogStore()
    errors = _load_catalog(store, path)
    return EstimateServiceContext(
        store=store,
        config=config or PricingConfig.from_env(),
        logger=logger,
        catalog_path=path,
        catalog_errors=errors,
        fixes=load_transcription_fixes(),
        debug=debug,
    )


SERVICE_CONTEXT = build_service_context()


# ---------- Request-Modelle ----------

class GeometryModel(BaseModel):
    width: float
    length: float
    height: float
    doors: int = 1
    windows: int = 1


class EstimateRequest(BaseModel):
    utterances: List[Union[str, Dict[str, Any]]] = Field(default_factory=list)
    geometry: GeometryModel


# ---------- FastAPI ----------

@asynccontextmanager
async def _lifespan(_app: FastAPI):
    ctx = _app.state.service_context
    logger.info(
        "Startup: catalog=%s tasks=%d rejected=%d labor_rate=%s origins=%s",
        ctx.catalog_path,
        len(ctx.catalog),
        len(ctx.catalog_errors),
        ctx.config.labor_rate,
        ALLOWED_ORIGINS,
    )
    yield


app = FastAPI(title="Rostkalkyl Backend", lifespan=_lifespan)
app.state.service_context = SERVICE_CONTEXT
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(conversation_api.router)


@app.get("/")
def root():
    return {"ok": True, "service": "rostkalkyl-backend", "health": "/api/health", "docs": "/docs"}


@app.get("/api/health")
def api_health():
    ctx: EstimateServiceContext = app.state.service_context
    return {"ok": True, "time": datetime.utcnow().isoformat(), "catalog_tasks": len(ctx.catalog)}


@app.get("/api/catalog/stats")
def api_catalog_stats():
    return catalog_stats(ctx=app.state.service_context)


@app.post("/api/estimate")
def api_estimate(payload: EstimateRequest = Body(...)):
    try:
        return run_estimate(payload=payload.model_dump(), ctx=app.state.service_context)
    except ServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc


# ---------- Lokaler Start ----------
if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", "8000"))
    uvicorn.run("rostkalkyl.main:app", host="0.0.0.0", port=port, reload=False)
