from __future__ import annotations
import base64
from dataclasses import dataclass
from typing import Any, Dict, Optional

import structlog
from authlib.integrations.starlette_client import OAuth
from fastapi import Depends, HTTPException, Request
from starlette.responses import RedirectResponse

from config import Settings
from schemas import User, UserCreate
from storage import MongoStorage

logger = structlog.get_logger(__name__)

LINE_AUTHORIZE_URL = "https://access.line.me/oauth2/v2.1/authorize"
LINE_TOKEN_URL = "https://api.line.me/oauth2/v2.1/token"
LINE_API_BASE_URL = "https://api.line.me/"
LINE_ISSUER = "https://access.line.me"

SESSION_KEY = "sid"


@dataclass
class LineProfile:
    user_id: str
    display_name: str
    picture_url: Optional[str] = None
    email: Optional[str] = None


class LineLogin:
    """LINE Login handshake: authorization redirect, code exchange, id_token claims.

    Web-login id_tokens are signed HS256 with the channel secret, so the
    OpenID metadata is registered here rather than loaded from the discovery
    document, which only advertises ES256.
    """

    def __init__(self, settings: Settings):
        self.callback_url = settings.line_callback_url
        self.oauth = OAuth()
        self.oauth.register(
            name="line",
            client_id=str(settings.line_channel_id),
            client_secret=settings.line_channel_secret,
            authorize_url=LINE_AUTHORIZE_URL,
            access_token_url=LINE_TOKEN_URL,
            api_base_url=LINE_API_BASE_URL,
            client_kwargs={"scope": "profile openid email", "token_endpoint_auth_method": "client_secret_post"},
            issuer=LINE_ISSUER,
            id_token_signing_alg_values_supported=["HS256"],
            jwks={"keys": [channel_secret_jwk(settings.line_channel_secret)]},
        )
        logger.info("line login initialised", channel_id=settings.line_channel_id, callback_url=self.callback_url)

    async def authorize_redirect(self, request: Request) -> RedirectResponse:
        return await self.oauth.line.authorize_redirect(request, self.callback_url, bot_prompt="normal")

    async def fetch_profile(self, request: Request) -> LineProfile:
        token = await self.oauth.line.authorize_access_token(request)
        return profile_from_claims(token["userinfo"])


def channel_secret_jwk(secret: str) -> Dict[str, str]:
    k = base64.urlsafe_b64encode(secret.encode()).rstrip(b"=").decode()
    return {"kty": "oct", "k": k, "alg": "HS256", "use": "sig"}


def profile_from_claims(claims: Dict[str, Any]) -> LineProfile:
    return LineProfile(
        user_id=claims["sub"],
        display_name=claims.get("name", ""),
        picture_url=claims.get("picture"),
        email=claims.get("email"),
    )


def login_line_user(storage: MongoStorage, profile: LineProfile) -> User:
    user = storage.get_user_by_line_id(profile.user_id)
    if user:
        logger.info("found existing user", user_id=user.id, display_name=user.display_name)
        return user
    user = storage.create_user(UserCreate(
        line_id=profile.user_id,
        display_name=profile.display_name,
        picture=profile.picture_url,
        email=profile.email,
        role="user",
    ))
    logger.info("created new user", user_id=user.id, display_name=user.display_name)
    return user


@dataclass
class RequestContext:
    """Per-request view of who is calling."""
    user: Optional[User] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def is_admin(self) -> bool:
        return self.user is not None and self.user.role == "admin"


def get_storage(request: Request) -> MongoStorage:
    return request.app.state.storage


def get_line_login(request: Request) -> LineLogin:
    return request.app.state.line_login


def get_request_context(request: Request, storage: MongoStorage = Depends(get_storage)) -> RequestContext:
    session_id = request.session.get(SESSION_KEY)
    if not session_id:
        return RequestContext()
    return RequestContext(user=storage.get_session_user(session_id))


def require_user(ctx: RequestContext = Depends(get_request_context)) -> User:
    if not ctx.is_authenticated:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return ctx.user


def require_admin(ctx: RequestContext = Depends(get_request_context)) -> User:
    if not ctx.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return ctx.user


def end_session(request: Request, storage: MongoStorage) -> None:
    session_id = request.session.pop(SESSION_KEY, None)
    if session_id:
        storage.delete_session(session_id)
    request.session.clear()
