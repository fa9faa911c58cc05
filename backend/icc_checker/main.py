from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from icc_checker.api.v1 import api_router
from icc_checker.core.config import settings
from icc_checker.core.logging_config import configure_logging
from icc_checker.middleware import RequestLoggingMiddleware
from icc_checker.schemas.error import ErrorResponse
from icc_checker.services.exceptions import AuditFlowError
from icc_checker.services.session_registry import AuditSessionRegistry


def get_application() -> FastAPI:
    configure_logging(settings.log_json)
    tags_metadata = [
        {"name": "audit-sessions", "description": "Guided store verification"},
        {"name": "stores", "description": "Stores and their audit history"},
        {"name": "checklist", "description": "Active checklist items"},
        {"name": "auth", "description": "Administrator sign-in"},
        {"name": "admin", "description": "Store and checklist administration"},
    ]
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        openapi_tags=tags_metadata,
        swagger_ui_parameters={"displayRequestDuration": True},
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.state.audit_sessions = AuditSessionRegistry(ttl=timedelta(minutes=settings.audit_session_ttl_minutes))
    app.include_router(api_router, prefix="/api/v1")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        payload = ErrorResponse(detail=exc.detail, code=None)
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(payload.model_dump()))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = jsonable_encoder(exc.errors())
        payload = ErrorResponse(detail=errors, code="validation_error")
        return JSONResponse(status_code=422, content=payload.model_dump())

    @app.exception_handler(AuditFlowError)
    async def audit_flow_exception_handler(request: Request, exc: AuditFlowError):
        payload = ErrorResponse(detail=exc.detail, code=exc.code, context=jsonable_encoder(exc.extra) or None)
        return JSONResponse(status_code=exc.status_code, content=payload.model_dump())

    return app


app = get_application()
