import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import LOG_LEVEL
from .errors import (
    FaultLogError, ValidationError, ImageDecodeError, InvalidState,
    NotFound, ExportDependencyError,
)
from .routers import exports, reports

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Construction Fault")

# The UI shell is served from the device itself
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_STATUS = [
    (ValidationError, 400),
    (ImageDecodeError, 400),
    (NotFound, 404),
    (InvalidState, 409),
    (ExportDependencyError, 503),
]


@app.exception_handler(FaultLogError)
async def fault_log_error_handler(request: Request, exc: FaultLogError):
    status_code = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 500)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "error": type(exc).__name__})


app.include_router(reports.router)
app.include_router(exports.router)


@app.get("/")
def root():
    return {"message": "Construction Fault ready"}
