"""
HTTP surface of the auth core.

`create_app()` wires config, store, mailer and identity providers into an `AuthService`
and an `AccessGate`, and maps every `AuthError` to `{"status": "fail", "message": ...}`.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from portal.api.schemas import (
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    RoleUpdateRequest,
    login_payload,
    user_payload,
)
from portal.auth.config import AuthConfig, load_auth_config
from portal.auth.errors import AuthError, InternalError, UpstreamError
from portal.auth.gate import AccessGate, current_user, require_roles
from portal.auth.models import Role, User
from portal.auth.providers import IdentityProvider, build_providers
from portal.auth.service import AuthService
from portal.auth.session import clear_session_cookie_kwargs, session_cookie_kwargs
from portal.auth.transient import (
    CSRF_COOKIE,
    PKCE_COOKIE,
    clear_transient_cookie_kwargs,
    decode_transient,
    encode_transient,
    transient_cookie_kwargs,
)
from portal.mail.mailer import Mailer, build_mailer
from portal.store.users import UserStore, build_user_store

logger = logging.getLogger(__name__)

_VERIFIED_PAGE = """<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"><title>Email Verified</title></head>
<body>
  <h1>Email Verified</h1>
  <p>Your email has been successfully verified.</p>
  <p>You can now close this window.</p>
</body>
</html>
"""


def _fail(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"status": "fail", "message": message})


def error_response(e: AuthError) -> JSONResponse:
    # Upstream/internal detail stays in the log.
    if isinstance(e, (UpstreamError, InternalError)):
        return _fail(e.status_code, e.public_message)
    return _fail(e.status_code, e.message)


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    msg = str(first.get("msg") or "Invalid request")
    if msg.startswith("Value error, "):
        return msg[len("Value error, ") :]
    loc = [str(x) for x in (first.get("loc") or ()) if x not in ("body", "query", "path")]
    if first.get("type") == "missing" and loc:
        return f"{loc[-1]} is required"
    return f"{'.'.join(loc)}: {msg}" if loc else msg


def _clear_transient(resp, cfg: AuthConfig) -> None:
    resp.set_cookie(**clear_transient_cookie_kwargs(cfg, key=CSRF_COOKIE))
    resp.set_cookie(**clear_transient_cookie_kwargs(cfg, key=PKCE_COOKIE))


def create_app(
    cfg: Optional[AuthConfig] = None,
    *,
    store: Optional[UserStore] = None,
    mailer: Optional[Mailer] = None,
    providers: Optional[Dict[str, IdentityProvider]] = None,
    service: Optional[AuthService] = None,
) -> FastAPI:
    cfg = cfg or load_auth_config()
    if service is None:
        store = store if store is not None else build_user_store()
        service = AuthService(
            cfg,
            store,
            mailer if mailer is not None else build_mailer(),
            providers=providers if providers is not None else build_providers(cfg),
        )
    if not cfg.jwt_secret:
        logger.warning("JWT_SECRET is not set; sign-in endpoints will fail until it is configured")

    app = FastAPI(title="Job Portal Auth")
    app.state.cfg = cfg
    app.state.service = service
    app.state.gate = AccessGate(cfg, service.store)

    @app.exception_handler(AuthError)
    async def _auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
        if isinstance(exc, (UpstreamError, InternalError)):
            logger.error(
                "%s %s failed: %s (%s)", request.method, request.url.path, type(exc).__name__, exc.detail or exc.message
            )
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _fail(400, _validation_message(exc))

    @app.exception_handler(Exception)
    async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unexpected error on %s %s", request.method, request.url.path)
        return _fail(500, InternalError.public_message)

    @app.on_event("startup")
    def _startup_maybe_migrate_db() -> None:
        """
        Auto-apply DB migrations when DB_AUTO_MIGRATE=1.

        This should never prevent the server from starting; failures are logged.
        """
        try:
            from portal.store.migrate import maybe_auto_migrate

            did_attempt, msg = maybe_auto_migrate()
            if did_attempt:
                logger.info("DB migrations: %s", msg)
        except Exception as e:
            logger.warning("DB migrations: startup auto-migrate failed: %s", str(e))

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all incoming HTTP requests."""
        start_time = time.time()
        logger.debug("%s %s", request.method, request.url.path)
        response = await call_next(request)
        process_time = time.time() - start_time
        logger.debug("%s %s - %d (%.3fs)", request.method, request.url.path, response.status_code, process_time)
        return response

    @app.get("/healthz")
    def healthz() -> Dict[str, Any]:
        return {"ok": True}

    # ---- local accounts ----

    @app.post("/api/auth/register", status_code=201)
    def register(body: RegisterRequest) -> Dict[str, Any]:
        service.register(body.name, body.email, body.password)
        return {
            "status": "success",
            "message": "Registration successful! Please check your email to verify your account.",
        }

    @app.post("/api/auth/login")
    def login(body: LoginRequest) -> JSONResponse:
        outcome = service.login(body.email, body.password)
        resp = JSONResponse(content=login_payload(outcome.token))
        resp.set_cookie(**session_cookie_kwargs(cfg, outcome.token))
        return resp

    @app.get("/api/auth/verify")
    def verify_email(token: str = Query("")) -> Response:
        token = (token or "").strip()
        if not token:
            return _fail(400, "Token is required.")
        outcome = service.verify_email(token)
        resp = HTMLResponse(content=_VERIFIED_PAGE)
        resp.set_cookie(**session_cookie_kwargs(cfg, outcome.token))
        if outcome.warnings:
            resp.headers["X-Auth-Warning"] = "; ".join(outcome.warnings)
        return resp

    @app.post("/api/auth/forgot-password")
    def forgot_password(body: ForgotPasswordRequest) -> Dict[str, Any]:
        service.forgot_password(body.email)
        return {"status": "success", "message": "Password reset link has been sent to your email."}

    @app.post("/api/auth/reset-password")
    def reset_password(body: ResetPasswordRequest) -> Dict[str, Any]:
        service.reset_password(body.token, body.new_password)
        return {"status": "success", "message": "Password has been successfully reset."}

    @app.post("/api/auth/logout")
    def logout() -> JSONResponse:
        resp = JSONResponse(content={"status": "success"})
        resp.set_cookie(**clear_session_cookie_kwargs(cfg))
        return resp

    # ---- delegated login ----

    @app.get("/api/auth/{provider}")
    def delegated_login(provider: str) -> RedirectResponse:
        url, state = service.start_delegated_login(provider)
        resp = RedirectResponse(url=url, status_code=302)
        for key, value in encode_transient(cfg, state).items():
            resp.set_cookie(**transient_cookie_kwargs(cfg, key=key, value=value))
        return resp

    @app.get("/api/auth/{provider}/callback")
    def delegated_login_callback(
        request: Request,
        provider: str,
        code: str = Query(""),
        state: str = Query(""),
    ) -> JSONResponse:
        transient = decode_transient(cfg, dict(request.cookies))
        try:
            outcome = service.delegated_login_callback(provider, code=code, state=state, transient=transient)
        except AuthError as e:
            if isinstance(e, (UpstreamError, InternalError)):
                logger.error("%s callback failed: %s", provider, e.detail or e.message)
            resp = error_response(e)
            _clear_transient(resp, cfg)
            return resp
        resp = JSONResponse(content=login_payload(outcome.token, outcome.warnings))
        resp.set_cookie(**session_cookie_kwargs(cfg, outcome.token))
        _clear_transient(resp, cfg)
        return resp

    # ---- users ----

    @app.get("/api/users/me")
    def me(user: User = Depends(current_user)) -> Dict[str, Any]:
        return {"status": "success", "data": {"user": user_payload(user)}}

    @app.put("/api/users/{user_id}/role")
    def update_role(
        user_id: str, body: RoleUpdateRequest, _admin: User = Depends(require_roles(Role.ADMIN))
    ) -> Dict[str, Any]:
        user = service.update_role(user_id, body.role)
        return {"status": "success", "data": {"user": user_payload(user)}}

    return app


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    import uvicorn

    # Configure logging for the application
    log_level = os.getenv("LOG_LEVEL", "info").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    # Map Python logging levels to uvicorn log levels
    uvicorn_log_level = (
        log_level.lower() if log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"] else "info"
    )

    logger.info("Starting auth server on %s:%d (log_level=%s)", host, port, log_level)
    uvicorn.run(create_app(), host=host, port=port, log_level=uvicorn_log_level)
