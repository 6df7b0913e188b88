import base64
import hashlib
import json
import urllib.parse
from dataclasses import dataclass, field
from datetime import timedelta
from functools import lru_cache

import jwt
import requests
from pydantic import ValidationError

from core.config import settings
from core.errors import AuthError
from core.logger import get_logger
from core.tokens import utcnow
from schemas.auth_schema import VerifiedIdentity

logger = get_logger("auth.oauth")

HTTP_TIMEOUT_SECONDS = 10


class ProviderExchangeFailed(AuthError):
    """The provider did not hand back a usable identity."""


@dataclass(frozen=True)
class ProviderEndpoints:
    authorize_url: str
    token_url: str
    scope: str
    # None means identity claims come from the signed id_token instead
    userinfo_url: str | None = None
    jwks_url: str | None = None
    issuer: str | None = None
    extra_params: dict = field(default_factory=dict)
    pkce: bool = False


PROVIDERS: dict[str, ProviderEndpoints] = {
    "google": ProviderEndpoints(
        authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
        token_url="https://oauth2.googleapis.com/token",
        userinfo_url="https://www.googleapis.com/oauth2/v3/userinfo",
        scope="openid email profile",
        extra_params={"access_type": "offline", "include_granted_scopes": "true", "prompt": "consent"},
    ),
    "apple": ProviderEndpoints(
        authorize_url="https://appleid.apple.com/auth/authorize",
        token_url="https://appleid.apple.com/auth/token",
        jwks_url="https://appleid.apple.com/auth/keys",
        issuer="https://appleid.apple.com",
        scope="name email",
        extra_params={"response_mode": "form_post"},
    ),
    "twitter": ProviderEndpoints(
        authorize_url="https://twitter.com/i/oauth2/authorize",
        token_url="https://api.twitter.com/2/oauth2/token",
        userinfo_url="https://api.twitter.com/2/users/me?user.fields=profile_image_url,confirmed_email",
        scope="users.read users.email tweet.read offline.access",
        pkce=True,
    ),
}


def pkce_challenge(verifier: str) -> str:
    """S256 code challenge for a PKCE verifier."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


@lru_cache(maxsize=None)
def _jwks_client(jwks_url: str) -> jwt.PyJWKClient:
    # One client per key set so fetched signing keys are reused across requests
    return jwt.PyJWKClient(jwks_url)


def _truthy(value) -> bool:
    if isinstance(value, str):
        return value.lower() == "true"
    return bool(value)


def apple_user_name(raw: str | None) -> str | None:
    """
    Full name from the `user` field Apple posts to the callback.

    Apple sends it only on the first consent and never puts it in the id_token,
    e.g. {"name": {"firstName": "Ada", "lastName": "Lovelace"}, "email": "..."}.
    """
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        logger.warning("Ignoring unreadable Apple user payload")
        return None
    name = data.get("name") if isinstance(data, dict) else None
    if not isinstance(name, dict):
        return None
    parts = [str(name.get(k) or "").strip() for k in ("firstName", "lastName")]
    return " ".join(p for p in parts if p) or None


class IdentityExchange:
    """
    Client side of one provider's authorization-code flow.

    The route layer only needs authorization_url() and exchange(); everything
    else about the provider stays in here.
    """

    def __init__(
        self,
        provider: str,
        client_id: str,
        client_secret: str,
        endpoints: ProviderEndpoints,
        http=None,
        jwks_client=None,
    ):
        self.provider = provider
        self.client_id = client_id
        self.client_secret = client_secret
        self.endpoints = endpoints
        self.http = http or requests
        self._jwks = jwks_client

    @property
    def jwks_client(self):
        if self._jwks is None:
            self._jwks = _jwks_client(self.endpoints.jwks_url)
        return self._jwks

    def authorization_url(self, state: str, redirect_uri: str, code_verifier: str | None = None) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": self.endpoints.scope,
            "state": state,
            **self.endpoints.extra_params,
        }
        if self.endpoints.pkce:
            if not code_verifier:
                raise ValueError(f"{self.provider} requires a PKCE code verifier")
            params["code_challenge"] = pkce_challenge(code_verifier)
            params["code_challenge_method"] = "S256"
        return self.endpoints.authorize_url + "?" + urllib.parse.urlencode(params)

    def _fetch_tokens(self, code: str, redirect_uri: str, code_verifier: str | None) -> dict:
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": redirect_uri,
        }
        if self.endpoints.pkce:
            data["code_verifier"] = code_verifier
        try:
            resp = self.http.post(
                self.endpoints.token_url,
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=HTTP_TIMEOUT_SECONDS,
            )
        except requests.RequestException as exc:
            raise ProviderExchangeFailed("token endpoint unreachable") from exc
        if resp.status_code != 200:
            raise ProviderExchangeFailed(f"token exchange failed with HTTP {resp.status_code}")
        return resp.json()

    def _verify_id_token(self, id_token: str) -> dict:
        try:
            signing_key = self.jwks_client.get_signing_key_from_jwt(id_token)
            return jwt.decode(
                id_token,
                signing_key.key,
                algorithms=["RS256"],
                audience=self.client_id,
                issuer=self.endpoints.issuer,
                options={"require": ["exp", "iat", "iss", "aud", "sub"]},
            )
        except jwt.PyJWTError as exc:
            logger.warning("Rejected %s id_token: %s", self.provider, exc)
            raise ProviderExchangeFailed("id_token verification failed") from exc

    def _fetch_claims(self, tokens: dict) -> dict:
        if self.endpoints.userinfo_url is None:
            id_token = tokens.get("id_token")
            if not id_token:
                raise ProviderExchangeFailed("no id_token returned")
            return self._verify_id_token(id_token)

        access_token = tokens.get("access_token")
        if not access_token:
            raise ProviderExchangeFailed("no access token returned")
        try:
            resp = self.http.get(
                self.endpoints.userinfo_url,
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=HTTP_TIMEOUT_SECONDS,
            )
        except requests.RequestException as exc:
            raise ProviderExchangeFailed("userinfo endpoint unreachable") from exc
        if resp.status_code != 200:
            raise ProviderExchangeFailed(f"userinfo failed with HTTP {resp.status_code}")
        claims = resp.json()
        # Twitter wraps the profile in a data envelope
        if isinstance(claims.get("data"), dict):
            claims = claims["data"]
        return claims

    def exchange(self, code: str, redirect_uri: str, code_verifier: str | None = None) -> VerifiedIdentity:
        tokens = self._fetch_tokens(code, redirect_uri, code_verifier)
        claims = self._fetch_claims(tokens)

        # Twitter only reports an address the user has confirmed with it
        confirmed_email = claims.get("confirmed_email")
        expires_in = tokens.get("expires_in")
        expires_at = utcnow() + timedelta(seconds=int(expires_in)) if expires_in else None
        try:
            return VerifiedIdentity(
                provider=self.provider,
                subject=str(claims.get("sub") or claims.get("id") or ""),
                email=claims.get("email") or confirmed_email or "",
                name=claims.get("name"),
                image=claims.get("picture") or claims.get("profile_image_url"),
                email_verified=_truthy(claims.get("email_verified")) or bool(confirmed_email),
                access_token=tokens.get("access_token"),
                refresh_token=tokens.get("refresh_token"),
                id_token=tokens.get("id_token"),
                scope=tokens.get("scope"),
                access_token_expires_at=expires_at,
            )
        except ValidationError as exc:
            logger.warning("Provider %s returned an incomplete identity", self.provider)
            raise ProviderExchangeFailed("incomplete identity") from exc


def build_exchanges() -> dict[str, IdentityExchange]:
    return {
        name: IdentityExchange(name, client_id, client_secret, PROVIDERS[name])
        for name, (client_id, client_secret) in settings.provider_credentials.items()
    }


def get_exchanges() -> dict[str, IdentityExchange]:
    """FastAPI dependency: the exchanges for every enabled provider."""
    return build_exchanges()


def callback_url(provider: str) -> str:
    return f"{settings.BASE_URL.rstrip('/')}{settings.AUTH_BASE_PATH}/callback/{provider}"
