"""
Web server.

Every request passes through session validation (cookie -> identity) and the
onboarding gate (identity without a linked key -> /onboarding) before reaching
the routes below.
"""

from __future__ import annotations

import html
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse, Response
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from linkgate.auth import provider
from linkgate.auth.config import AuthConfig, load_auth_config
from linkgate.auth.models import Identity
from linkgate.auth.session import (
    SESSION_COOKIE,
    clear_session_cookie_kwargs,
    session_cookie_kwargs,
    validate_session,
)
from linkgate.auth.util import request_origin, use_secure_cookies
from linkgate.errors import BadRequest, LinkgateError, Unauthenticated, UpstreamFailure
from linkgate.linking import flow, pkce
from linkgate.linking.config import LinkingConfig, load_linking_config
from linkgate.linking.gate import ONBOARDING_PATH, onboarding_redirect
from linkgate.storage import CredentialStore, build_credential_store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppContext:
    auth: AuthConfig
    linking: LinkingConfig
    store: CredentialStore


class BalanceResponse(BaseModel):
    ok: bool
    balance: int


router = APIRouter()


def _ctx(request: Request) -> AppContext:
    return request.app.state.ctx


def _identity(request: Request) -> Optional[Identity]:
    return getattr(request.state, "identity", None)


def require_identity(request: Request) -> Identity:
    identity = _identity(request)
    if identity is None:
        raise Unauthenticated("Login required")
    return identity


def _secure(request: Request) -> bool:
    return use_secure_cookies(str(request.url))


def _cookie_secret(ctx: AppContext) -> str:
    if not ctx.auth.cookie_password:
        raise LinkgateError("WORKOS_COOKIE_PASSWORD not configured")
    return ctx.auth.cookie_password


def _sets_cookie(response: Response, name: str) -> bool:
    return any(h.startswith(f"{name}=") for h in response.headers.getlist("set-cookie"))


def error_response(exc: LinkgateError) -> Response:
    redirect_to = getattr(exc, "redirect_to", None)
    if redirect_to:
        return RedirectResponse(url=redirect_to, status_code=302)
    if exc.status_code >= 500:
        # Upstream detail stays in the logs.
        logger.error("%s: %s", type(exc).__name__, str(exc))
    return PlainTextResponse(exc.public_message, status_code=exc.status_code)


async def _handle_linkgate_error(request: Request, exc: LinkgateError) -> Response:
    return error_response(exc)


async def authenticate_and_gate(request: Request, call_next):
    """Validate the session cookie, then apply the onboarding gate."""
    start_time = time.time()
    ctx = _ctx(request)
    try:
        result = await run_in_threadpool(validate_session, ctx.auth, request.cookies.get(SESSION_COOKIE))
        request.state.identity = result.identity
        request.state.session_id = result.session_id

        target = await run_in_threadpool(onboarding_redirect, ctx.store, result.identity, request.url.path)
        if target is not None:
            response: Response = RedirectResponse(url=target, status_code=302)
        else:
            response = await call_next(request)

        # A rejected cookie is cleared unless the handler just issued a new session.
        if result.clear_cookie and not _sets_cookie(response, SESSION_COOKIE):
            response.set_cookie(**clear_session_cookie_kwargs(secure=_secure(request)))

        process_time = time.time() - start_time
        logger.debug("%s %s - %d (%.3fs)", request.method, request.url.path, response.status_code, process_time)
        return response
    except Exception as e:
        process_time = time.time() - start_time
        logger.exception("%s %s - ERROR after %.3fs: %s", request.method, request.url.path, process_time, str(e))
        raise


def _page(title: str, body: str) -> HTMLResponse:
    return HTMLResponse(f"<!doctype html><html><head><title>{html.escape(title)}</title></head><body>{body}</body></html>")


@router.get("/healthz")
def healthz() -> Dict[str, Any]:
    return {"ok": True}


@router.get("/")
def index(request: Request) -> HTMLResponse:
    identity = _identity(request)
    if identity is None:
        return _page("Welcome", '<h1>Welcome</h1><a href="/auth/login">Sign in</a>')

    cred = _ctx(request).store.for_identity(identity.id).get()
    balance = "unknown" if cred is None or cred.balance < 0 else f"${cred.balance / 100:.2f}"
    return _page(
        "Home",
        f"<h1>Hello, {html.escape(identity.display_name)}!</h1>"
        f"<p>API balance: {balance}</p>"
        '<a href="/linking/disconnect">Disconnect API key</a> '
        '<a href="/auth/logout">Sign out</a>',
    )


@router.get(ONBOARDING_PATH)
def onboarding(request: Request) -> HTMLResponse:
    identity = require_identity(request)
    partition = _ctx(request).store.for_identity(identity.id)
    state = flow.link_state(partition, verifier_cookie=request.cookies.get(pkce.VERIFIER_COOKIE))
    if state is flow.LinkState.LINKED:
        action = '<a href="/">Continue</a> <a href="/linking/disconnect">Disconnect</a>'
    else:
        action = '<a href="/linking/connect">Connect your API key</a>'
    return _page(
        "Connect",
        f"<h1>Connect an API key</h1><p>Status: {state.value}</p>{action} <a href=\"/auth/logout\">Sign out</a>",
    )


# ---- Identity provider login ----


@router.get("/auth/login")
def auth_login(request: Request) -> RedirectResponse:
    ctx = _ctx(request)
    redirect_uri = ctx.auth.redirect_uri or f"{request_origin(str(request.url))}/auth/callback"
    try:
        url = provider.get_authorization_url(ctx.auth, redirect_uri=redirect_uri)
    except ValueError as e:
        raise UpstreamFailure(str(e), public_message="Login is not configured") from e
    return RedirectResponse(url=url, status_code=302)


@router.get("/auth/callback")
def auth_callback(request: Request, code: Optional[str] = Query(None)) -> RedirectResponse:
    if not code:
        raise BadRequest("Missing authorization code")

    ctx = _ctx(request)
    try:
        auth = provider.authenticate_with_code(ctx.auth, code=code)
    except (UpstreamFailure, ValueError) as e:
        raise UpstreamFailure(f"Auth callback error: {e}", public_message="Authentication failed") from e

    resp = RedirectResponse(url="/", status_code=302)
    resp.set_cookie(**session_cookie_kwargs(ctx.auth, auth.sealed_session, secure=_secure(request)))
    logger.info("Signed in identity %s", auth.identity.id)
    return resp


@router.get("/auth/logout")
def auth_logout(request: Request) -> RedirectResponse:
    ctx = _ctx(request)
    clear_kwargs = clear_session_cookie_kwargs(secure=_secure(request))
    session_id = getattr(request.state, "session_id", None)

    target = "/"
    if session_id:
        try:
            target = provider.get_logout_url(ctx.auth, session_id=session_id)
        except (UpstreamFailure, ValueError) as e:
            logger.warning("Logout error: %s", str(e))

    resp = RedirectResponse(url=target, status_code=302)
    resp.headers["Cache-Control"] = "no-store"
    resp.set_cookie(**clear_kwargs)
    return resp


# ---- Third-party key linking (PKCE) ----


@router.get("/linking/connect")
def linking_connect(request: Request) -> RedirectResponse:
    identity = require_identity(request)
    ctx = _ctx(request)
    callback_url = ctx.linking.callback_url or f"{request_origin(str(request.url))}/linking/callback"

    start = flow.start_connect(ctx.linking, secret=_cookie_secret(ctx), identity=identity, callback_url=callback_url)
    resp = RedirectResponse(url=start.authorize_url, status_code=302)
    resp.set_cookie(
        **pkce.verifier_cookie_kwargs(
            start.cookie_value, max_age=ctx.linking.verifier_ttl_seconds, secure=_secure(request)
        )
    )
    return resp


@router.get("/linking/callback")
def linking_callback(request: Request, code: Optional[str] = Query(None)) -> Response:
    # Anonymous callbacks go to login with the verifier left in place.
    identity = require_identity(request)
    ctx = _ctx(request)
    verifier_cookie = request.cookies.get(pkce.VERIFIER_COOKIE)
    try:
        flow.complete_connect(
            ctx.linking,
            ctx.store.for_identity(identity.id),
            secret=_cookie_secret(ctx),
            identity=identity,
            code=code,
            verifier_cookie=verifier_cookie,
        )
        resp: Response = RedirectResponse(url="/", status_code=302)
    except LinkgateError as e:
        resp = error_response(e)
    # The verifier is single-use whatever happened above.
    resp.set_cookie(**pkce.clear_verifier_cookie_kwargs(secure=_secure(request)))
    return resp


@router.get("/linking/disconnect")
def linking_disconnect(request: Request) -> RedirectResponse:
    identity = require_identity(request)
    flow.disconnect(_ctx(request).store.for_identity(identity.id))
    return RedirectResponse(url=ONBOARDING_PATH, status_code=302)


@router.get("/linking/balance", response_model=BalanceResponse)
def linking_balance(request: Request) -> BalanceResponse:
    identity = require_identity(request)
    ctx = _ctx(request)
    balance = flow.refresh_balance(ctx.linking, ctx.store.for_identity(identity.id))
    return BalanceResponse(ok=True, balance=balance)


def create_app(ctx: Optional[AppContext] = None) -> FastAPI:
    """Build the app; configuration and storage are passed in rather than read per request."""
    if ctx is None:
        ctx = AppContext(auth=load_auth_config(), linking=load_linking_config(), store=build_credential_store())
        if not ctx.auth.provider_configured:
            logger.warning("Identity provider is not fully configured (WORKOS_* env vars); logins will fail")

    app = FastAPI(title="linkgate")
    app.state.ctx = ctx
    app.add_exception_handler(LinkgateError, _handle_linkgate_error)
    app.middleware("http")(authenticate_and_gate)
    app.include_router(router)
    return app


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    import uvicorn

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

    logger.info("Starting server on %s:%d (log_level=%s)", host, port, log_level)
    uvicorn.run(create_app(), host=host, port=port, log_level=uvicorn_log_level)
