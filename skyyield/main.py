"""FastAPI entry point for the commissions service."""
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from skyyield import __version__
from skyyield.database import init_db
from skyyield.errors import CommissionError
from skyyield.routers import auth, commissions, partners
from skyyield.schemas import describe_validation_errors

logging.basicConfig(
    level=os.getenv("SKYYIELD_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    yield


app = FastAPI(title="SkyYield Commissions", version=__version__, lifespan=lifespan)

app.include_router(auth.router)
app.include_router(partners.router)
app.include_router(commissions.router)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@app.get("/")
def root() -> JSONResponse:
    return JSONResponse({"service": "skyyield-commissions", "version": __version__, "docs": "/docs"})


@app.get("/health")
def health() -> JSONResponse:
    """Simple health endpoint for load balancers and platform checks."""
    return JSONResponse({"status": "ok"})


@app.exception_handler(CommissionError)
async def commission_error_handler(request: Request, exc: CommissionError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return _error(exc.status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return _error(status.HTTP_400_BAD_REQUEST, describe_validation_errors(exc.errors()))


@app.exception_handler(SQLAlchemyError)
async def store_failure_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error during %s %s", request.method, request.url.path, exc_info=exc)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to process commission request")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("skyyield.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
