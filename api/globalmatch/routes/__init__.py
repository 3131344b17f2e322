from fastapi import APIRouter, FastAPI

from .admin import router as admin_router, scaffold_router as admin_scaffold_router
from .analytics import router as analytics_router, scaffold_router as analytics_scaffold_router
from .auth import router as auth_router, scaffold_router as auth_scaffold_router
from .billing import router as billing_router, scaffold_router as billing_scaffold_router
from .calls import router as calls_router, scaffold_router as calls_scaffold_router
from .chat import router as chat_router, scaffold_router as chat_scaffold_router
from .email import router as email_router, scaffold_router as email_scaffold_router
from .match import router as match_router, scaffold_router as match_scaffold_router
from .notifications import router as notifications_router, scaffold_router as notifications_scaffold_router
from .profile import router as profile_router, scaffold_router as profile_scaffold_router
from .safety import router as safety_router, scaffold_router as safety_scaffold_router
from .translate import router as translate_router, scaffold_router as translate_scaffold_router


def include_modular_routers(app: FastAPI) -> None:
    app.include_router(auth_router, prefix="/auth", tags=["auth"])
    app.include_router(profile_router, tags=["profiles"])
    app.include_router(match_router, tags=["matches"])
    app.include_router(chat_router, tags=["chat"])
    app.include_router(safety_router, tags=["safety"])
    app.include_router(billing_router, tags=["billing"])
    app.include_router(notifications_router, tags=["notifications"])
    app.include_router(translate_router, tags=["translate"])
    app.include_router(calls_router, tags=["calls"])
    app.include_router(analytics_router, tags=["analytics"])
    app.include_router(email_router, tags=["email"])
    app.include_router(admin_router, tags=["admin"])

    app.include_router(auth_scaffold_router, prefix="/_scaffold/auth", tags=["scaffold-auth"])
    app.include_router(profile_scaffold_router, prefix="/_scaffold/profile", tags=["scaffold-profile"])
    app.include_router(match_scaffold_router, prefix="/_scaffold/match", tags=["scaffold-match"])
    app.include_router(chat_scaffold_router, prefix="/_scaffold/chat", tags=["scaffold-chat"])
    app.include_router(safety_scaffold_router, prefix="/_scaffold/safety", tags=["scaffold-safety"])
    app.include_router(billing_scaffold_router, prefix="/_scaffold/billing", tags=["scaffold-billing"])
    app.include_router(notifications_scaffold_router, prefix="/_scaffold/notifications", tags=["scaffold-notifications"])
    app.include_router(translate_scaffold_router, prefix="/_scaffold/translate", tags=["scaffold-translate"])
    app.include_router(calls_scaffold_router, prefix="/_scaffold/calls", tags=["scaffold-calls"])
    app.include_router(analytics_scaffold_router, prefix="/_scaffold/analytics", tags=["scaffold-analytics"])
    app.include_router(email_scaffold_router, prefix="/_scaffold/email", tags=["scaffold-email"])
    app.include_router(admin_scaffold_router, prefix="/_scaffold/admin", tags=["scaffold-admin"])


__all__ = ["include_modular_routers", "APIRouter"]
