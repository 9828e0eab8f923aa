# passgate/main.py
import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.concurrency import run_in_threadpool

from passgate.api.issuer import router as issuer_router
from passgate.api.verifier import router as verifier_router
from passgate.api.whitelist import router as whitelist_router

from passgate.core.config import settings
from passgate.core.errors import register_exception_handlers
from passgate.store.session import get_store

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def sweep_periodically(interval: float):
    while True:
        await asyncio.sleep(interval)
        try:
            await run_in_threadpool(get_store().sweep_expired)
        except Exception:
            logger.exception("Whitelist sweep failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # === STARTUP ===
    get_store().sweep_expired()
    sweeper = asyncio.create_task(sweep_periodically(settings.sweep_interval_seconds))
    logger.info("Whitelist sweeper running every %ss", settings.sweep_interval_seconds)
    yield
    # === SHUTDOWN ===
    sweeper.cancel()
    try:
        await sweeper
    except asyncio.CancelledError:
        pass

app = FastAPI(title="Visitor Pass Gateway", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_exception_handlers(app)

app.include_router(issuer_router, prefix="/api", tags=["issuer"])
app.include_router(whitelist_router, prefix="/api", tags=["whitelist"])
app.include_router(verifier_router, prefix="/api", tags=["verifier"])

@app.get("/")
def root():
    return {"ok": True}
