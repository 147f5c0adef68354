import logging

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from taskmind.services.llm_provider import LLMProviderError
from taskmind.services.suggestion_parsing_service import SuggestionParseError

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI):
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        sentry_sdk.capture_exception(exc)
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error",
                "type": type(exc).__name__,
            },
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(
            status_code=400,
            content={"detail": str(exc)},
        )

    @app.exception_handler(SuggestionParseError)
    async def suggestion_parse_error_handler(request: Request, exc: SuggestionParseError):
        return JSONResponse(
            status_code=502,
            content={"kind": exc.kind, "detail": exc.detail},
        )

    @app.exception_handler(LLMProviderError)
    async def llm_provider_error_handler(request: Request, exc: LLMProviderError):
        return JSONResponse(
            status_code=503,
            content={"kind": exc.kind, "detail": str(exc)},
        )
