import secrets
import urllib.parse

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from core.auth import (
    Allow,
    clear_session_cookie_kwargs,
    extract_session_token,
    require_api_session,
    session_cookie_kwargs,
    sign_out,
)
from core.config import settings
from core.database import get_db
from core.errors import IdentityConflict
from core.issuer import issue_session
from core.logger import get_logger
from core.oauth import IdentityExchange, ProviderExchangeFailed, apple_user_name, callback_url, get_exchanges
from core.tokens import is_well_formed, tokens_equal
from core.verification import consume_challenge, issue_challenge
from schemas.auth_schema import CurrentSessionResponse
from schemas.session_schema import SessionResponse
from schemas.user_schema import UserResponse

logger = get_logger("auth.routes")

router = APIRouter(prefix=settings.AUTH_BASE_PATH, tags=["Authentication"])

STATE_TTL_SECONDS = 10 * 60
STATE_COOKIE = "oauth_state"
VERIFIER_COOKIE = "oauth_verifier"


def _state_identifier(provider: str) -> str:
    return f"oauth_state:{provider}"


def _oauth_cookie_kwargs(key: str, value: str, max_age: int = STATE_TTL_SECONDS) -> dict:
    # Apple's form_post callback is a cross-site POST, which lax cookies never reach
    return {
        "key": key,
        "value": value,
        "max_age": max_age,
        "httponly": True,
        "secure": settings.cookie_secure,
        "samesite": "none" if settings.cookie_secure else "lax",
        "path": settings.AUTH_BASE_PATH,
    }


def _clear_oauth_cookies(response):
    for key in (STATE_COOKIE, VERIFIER_COOKIE):
        response.set_cookie(**_oauth_cookie_kwargs(key, "", max_age=0))
    return response


def _sign_in_redirect(error: str) -> RedirectResponse:
    url = settings.SIGN_IN_PATH + "?" + urllib.parse.urlencode({"error": error})
    return RedirectResponse(url=url, status_code=303)


def _get_exchange(provider: str, exchanges: dict[str, IdentityExchange]) -> IdentityExchange:
    exchange = exchanges.get(provider)
    if exchange is None:
        raise HTTPException(status_code=404, detail="Unknown provider")
    return exchange


@router.get("/sign-in/{provider}")
def sign_in(
    provider: str,
    db: Session = Depends(get_db),
    exchanges: dict = Depends(get_exchanges),
):
    """
    Start a provider sign-in.

    The state is stored server-side as a one-time challenge and also pinned to
    this browser in a short-lived cookie, together with the PKCE verifier, so
    a callback only completes in the browser that started it.
    """
    exchange = _get_exchange(provider, exchanges)
    challenge = issue_challenge(db, _state_identifier(provider), ttl_seconds=STATE_TTL_SECONDS)
    verifier = secrets.token_urlsafe(32)
    url = exchange.authorization_url(challenge.value, callback_url(provider), code_verifier=verifier)

    response = RedirectResponse(url=url, status_code=302)
    response.headers["Cache-Control"] = "no-store"
    response.set_cookie(**_oauth_cookie_kwargs(STATE_COOKIE, challenge.value))
    response.set_cookie(**_oauth_cookie_kwargs(VERIFIER_COOKIE, verifier))
    return response


def _state_matches(state: str | None, cookie_state: str | None) -> bool:
    if not is_well_formed(state) or not is_well_formed(cookie_state):
        return False
    return tokens_equal(state, cookie_state)


def _complete_sign_in(
    db: Session,
    exchange: IdentityExchange,
    request: Request,
    code: str | None,
    state: str | None,
    user_name: str | None = None,
):
    if not _state_matches(state, request.cookies.get(STATE_COOKIE)):
        logger.warning("Rejected %s callback: state not bound to this browser", exchange.provider)
        return _sign_in_redirect("state")
    if not consume_challenge(db, _state_identifier(exchange.provider), state):
        return _sign_in_redirect("state")
    if not code:
        return _sign_in_redirect("sign_in_failed")

    try:
        identity = exchange.exchange(
            code,
            callback_url(exchange.provider),
            code_verifier=request.cookies.get(VERIFIER_COOKIE),
        )
    except ProviderExchangeFailed as exc:
        logger.warning("Provider exchange failed for %s: %s", exchange.provider, exc)
        return _sign_in_redirect("sign_in_failed")
    if user_name and not identity.name:
        identity = identity.model_copy(update={"name": user_name})

    try:
        session = issue_session(
            db,
            identity,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )
    except IdentityConflict:
        return _sign_in_redirect("sign_in_failed")

    response = RedirectResponse(url=settings.AFTER_SIGN_IN_PATH, status_code=303)
    response.set_cookie(**session_cookie_kwargs(session.token))
    return response


@router.get("/callback/{provider}")
def callback(
    provider: str,
    request: Request,
    code: str | None = None,
    state: str | None = None,
    db: Session = Depends(get_db),
    exchanges: dict = Depends(get_exchanges),
):
    """Handle the provider redirect, exchange the code, issue a session and set the cookie."""
    exchange = _get_exchange(provider, exchanges)
    return _clear_oauth_cookies(_complete_sign_in(db, exchange, request, code, state))


@router.post("/callback/{provider}")
async def callback_form_post(
    provider: str,
    request: Request,
    db: Session = Depends(get_db),
    exchanges: dict = Depends(get_exchanges),
):
    # Providers using response_mode=form_post send code/state (and Apple its `user` JSON) as an urlencoded body
    exchange = _get_exchange(provider, exchanges)
    body = urllib.parse.parse_qs((await request.body()).decode("utf-8", "replace"))
    response = await run_in_threadpool(
        _complete_sign_in,
        db,
        exchange,
        request,
        (body.get("code") or [None])[0],
        (body.get("state") or [None])[0],
        apple_user_name((body.get("user") or [None])[0]),
    )
    return _clear_oauth_cookies(response)


@router.post("/sign-out")
def sign_out_action(request: Request, db: Session = Depends(get_db)):
    """Invalidate the caller's session and send them back to sign in. Always succeeds."""
    sign_out(db, extract_session_token(request))
    response = RedirectResponse(url=settings.SIGN_IN_PATH, status_code=303)
    response.delete_cookie(**clear_session_cookie_kwargs())
    return response


@router.get("/session", response_model=CurrentSessionResponse)
def get_session(decision: Allow = Depends(require_api_session)):
    return CurrentSessionResponse(
        user=UserResponse.model_validate(decision.user),
        session=SessionResponse.model_validate(decision.session),
    )
