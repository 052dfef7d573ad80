from fastapi import FastAPI

from .admin import router as admin_router
from .matching import router as matching_router
from .reschedule import router as reschedule_router
from .sessions import router as sessions_router


def include_modular_routers(app: FastAPI) -> None:
    app.include_router(matching_router, tags=["matching"])
    app.include_router(sessions_router, tags=["sessions"])
    app.include_router(reschedule_router, tags=["reschedule"])
    app.include_router(admin_router, prefix="/admin", tags=["admin"])


__all__ = ["include_modular_routers"]
