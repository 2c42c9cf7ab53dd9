"""Admin authentication backend for sqladmin."""

from __future__ import annotations

import secrets

from sqladmin.authentication import AuthenticationBackend
from starlette.requests import Request

from app.infra.auth import create_access_token, decode_access_token
from app.infra.config import settings


class AdminAuth(AuthenticationBackend):
    """Authenticate the operator with the configured admin password, stored as JWT in session."""

    async def login(self, request: Request) -> bool:
        form = await request.form()
        username = str(form.get("username", "")).strip() or "admin"
        password = str(form.get("password", ""))
        if not password or not settings.admin_password:
            return False
        if not secrets.compare_digest(password, settings.admin_password):
            return False

        token = create_access_token(username)
        request.session["token"] = token.access_token
        request.session["user_id"] = username
        return True

    async def logout(self, request: Request) -> bool:
        request.session.clear()
        return True

    async def authenticate(self, request: Request) -> bool:
        token = request.session.get("token")
        if not token:
            return False
        try:
            token_data = decode_access_token(token)
        except Exception:
            return False
        return token_data.user_id == request.session.get("user_id")
