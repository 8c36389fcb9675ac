import logging

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from docchat.api.documents import router as documents_router
from docchat.config import get_settings
from docchat.logging_config import configure_logging
from docchat.telemetry import emit_app_startup_event

configure_logging(get_settings().log_dir)

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="Document Chat Context API")
app.include_router(documents_router)


@app.on_event("startup")
async def _log_startup() -> None:
    emit_app_startup_event()


@app.get("/", response_class=PlainTextResponse)
def read_root() -> str:
    """Healthcheck endpoint for the service."""
    return "ok"


@app.get("/healthz", response_class=PlainTextResponse)
def healthcheck() -> str:
    """Liveness probe used by container orchestrators."""
    return "ok"
