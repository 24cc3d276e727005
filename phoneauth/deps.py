from dataclasses import dataclass

from fastapi import Depends, Header, Request

from phoneauth.config import Settings
from phoneauth.errors import AuthenticationError, TokenError
from phoneauth.services.sessions import SessionOrchestrator
from phoneauth.services.tokens import TokenClaims


@dataclass(frozen=True)
class RequestContext:
    """Caller identity established from a verified access token."""

    claims: TokenClaims
    access_token: str

    @property
    def phone(self) -> str:
        return self.claims.phone

    @property
    def user_id(self) -> str:
        return self.claims.subject


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_orchestrator(request: Request) -> SessionOrchestrator:
    return request.app.state.orchestrator


def get_request_context(
    authorization: str | None = Header(default=None),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> RequestContext:
    if not authorization:
        raise AuthenticationError("Missing authorization header")
    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise AuthenticationError("Invalid authorization header format")
    try:
        claims = orchestrator.authenticate(token)
    except TokenError as exc:
        raise AuthenticationError("Invalid or expired token") from exc
    return RequestContext(claims=claims, access_token=token)
