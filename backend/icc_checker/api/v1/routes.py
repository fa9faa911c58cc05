from fastapi import APIRouter

from icc_checker.api.v1 import admin, audit_sessions, auth, checklist, stores

api_router = APIRouter()

api_router.include_router(stores.router)
api_router.include_router(checklist.router)
api_router.include_router(audit_sessions.router)
api_router.include_router(auth.router)
api_router.include_router(admin.router)


@api_router.get("/health", tags=["health"])
def healthcheck() -> dict[str, str]:
    return {"status": "ok"}
