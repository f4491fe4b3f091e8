"""RFC 7807 *Problem Details* responses for the `kcli serve` HTTP surface."""
from __future__ import annotations

import logging
from typing import Optional
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from kcli.core.exceptions import BrokerUnavailableError, KcliError

logger = logging.getLogger(__name__)


class ProblemDetail(BaseModel):
    """Data model that serialises to RFC 7807 JSON.

    Attributes
    ----------
    type : str
        A URI reference that identifies the problem type.
    title : str
        A short human-readable summary of the problem type.
    status : int
        The HTTP status code.
    detail : str | None
        A human-readable explanation specific to this occurrence.
    instance : str
        A URI reference that identifies the specific occurrence.
    """

    type: str = "about:blank"
    title: str
    status: int = Field(..., ge=400, le=599)
    detail: Optional[str] = None
    instance: str = Field(default_factory=lambda: f"urn:uuid:{uuid4()}")


def _problem(status: int, title: str, detail: str) -> JSONResponse:
    body = ProblemDetail(status=status, title=title, detail=detail)
    return JSONResponse(
        status_code=status,
        content=body.model_dump(mode="json"),
        media_type="application/problem+json",
    )


def install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValueError)
    async def value_error_handler(_: Request, exc: ValueError):
        return _problem(400, "Bad Request", str(exc))

    @app.exception_handler(KeyError)
    async def key_error_handler(_: Request, exc: KeyError):
        return _problem(404, "Not Found", str(exc))

    @app.exception_handler(BrokerUnavailableError)
    async def broker_error_handler(_: Request, exc: BrokerUnavailableError):
        return _problem(503, "Broker Unavailable", str(exc))

    @app.exception_handler(KcliError)
    async def kcli_error_handler(_: Request, exc: KcliError):
        return _problem(500, "Internal Server Error", str(exc))

    # Catch-all
    @app.exception_handler(Exception)
    async def unhandled(_: Request, exc: Exception):
        logger.exception("unhandled error")
        return _problem(500, "Internal Server Error", str(exc))
