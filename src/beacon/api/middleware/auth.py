"""JWT Bearer and API key authentication middleware."""

import hmac
import logging

from jose import JWTError, jwt
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from beacon.config import settings
from beacon.logging_config import bind_request_context

logger = logging.getLogger(__name__)

_ANONYMOUS = {"sub": "anonymous", "roles": [], "scopes": []}


def _decode_jwt(token: str) -> dict:
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
        )
    except JWTError as exc:
        logger.debug("JWT decode failed: %s", exc)
        raise ValueError(f"Invalid token: {exc}") from exc


def _api_key_matches(raw_key: str) -> int | None:
    """Index of the configured key matching ``raw_key``, compared in constant time."""
    for index, key in enumerate(settings.api_keys):
        if key and hmac.compare_digest(key.encode(), raw_key.encode()):
            return index
    return None


class AuthMiddleware(BaseHTTPMiddleware):
    """Resolve Bearer token or X-API-Key into request.state.user.

    Missing credentials yield an anonymous principal; routes decide whether
    that is acceptable. Invalid credentials are carried as ``_auth_error``
    so the dependency layer can answer 401.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        auth_header = request.headers.get("authorization", "")
        api_key_header = request.headers.get("x-api-key", "")

        if auth_header.startswith("Bearer "):
            user_info = self._validate_jwt(auth_header[7:])
        elif api_key_header:
            user_info = self._validate_api_key(api_key_header)
        else:
            user_info = dict(_ANONYMOUS)

        request.state.user = user_info
        if user_info.get("sub") != "anonymous":
            bind_request_context(getattr(request.state, "trace_id", "unknown"), user_info["sub"])
        return await call_next(request)

    def _validate_jwt(self, token: str) -> dict:
        try:
            payload = _decode_jwt(token)
        except ValueError:
            return {**_ANONYMOUS, "_auth_error": "invalid_token"}

        return {
            "sub": payload.get("sub", ""),
            "roles": payload.get("roles", []),
            "scopes": payload.get("scopes", ["*"]),
        }

    def _validate_api_key(self, raw_key: str) -> dict:
        index = _api_key_matches(raw_key)
        if index is None:
            logger.warning("Rejected unknown API key")
            return {**_ANONYMOUS, "_auth_error": "invalid_api_key"}
        return {"sub": f"api_key:{index}", "roles": ["service"], "scopes": ["*"]}
