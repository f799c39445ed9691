import logging

from fastapi import FastAPI

from codediag.config import LOG_LEVEL, SKIP_INIT_DB
from codediag.api.codes import router as codes_router
from codediag.api.diagnose import router as diagnose_router
from codediag.services.oem import get_store

logging.basicConfig(level=getattr(logging, LOG_LEVEL, logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI(title="Fault Code Diagnostics API")

app.include_router(codes_router)
app.include_router(diagnose_router)


@app.get("/healthz")
async def healthz():
    return {"status": "ok"}


@app.on_event("startup")
async def on_startup():
    if SKIP_INIT_DB:
        logger.info("[startup] SKIP_INIT_DB=true, manufacturer table prepared on first lookup")
        return
    await get_store().ensure_ready()
