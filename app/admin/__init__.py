"""Admin dashboard — setup and configuration for sqladmin."""

from __future__ import annotations

from fastapi import FastAPI
from sqladmin import Admin

from app.admin.auth import AdminAuth
from app.admin.views import (
    ActiveTestAdmin,
    ArchivedTestAdmin,
    ChronicleEntryAdmin,
    DraftTestAdmin,
    HeroAdmin,
    WorldMemberAdmin,
)
from app.infra.config import settings
from app.infra.db import engine


def setup_admin(app: FastAPI) -> Admin:
    """Configure and mount the read-only sqladmin dashboard on the FastAPI app."""
    authentication_backend = AdminAuth(secret_key=settings.jwt_secret_key)

    admin = Admin(
        app=app,
        engine=engine,
        authentication_backend=authentication_backend,
        base_url="/admin",
        title="Montage-Core Admin",
    )

    admin.add_view(ActiveTestAdmin)
    admin.add_view(DraftTestAdmin)
    admin.add_view(ArchivedTestAdmin)
    admin.add_view(WorldMemberAdmin)
    admin.add_view(HeroAdmin)
    admin.add_view(ChronicleEntryAdmin)

    return admin
