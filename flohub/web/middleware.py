"""aiohttp middlewares: request correlation, caller identity and error mapping."""

import logging
import uuid
from collections.abc import Awaitable, Callable
from contextvars import ContextVar
from typing import Optional

from aiohttp import web

from flohub.settings.exceptions import SettingsError
from flohub.sources.exceptions import SourceNotFoundError, ValidationError

logger = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

USER_ID_HEADER = "X-User-Id"
PUBLIC_PATHS = frozenset({"/health"})

# Context variable for storing request correlation ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


@web.middleware
async def correlation_id_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Extract or generate a correlation id and echo it on the response."""
    correlation_id = (
        request.headers.get("X-Request-ID")
        or request.headers.get("X-Correlation-ID")
        or str(uuid.uuid4())
    )

    token = request_id_var.set(correlation_id)
    request["correlation_id"] = correlation_id
    try:
        response = await handler(request)
    finally:
        request_id_var.reset(token)

    response.headers["X-Request-ID"] = correlation_id
    return response


def get_request_id() -> str:
    """Get current request correlation ID, or ``"no-request-id"`` outside a request."""
    request_id = request_id_var.get()
    return request_id if request_id else "no-request-id"


def _check_bearer_token(request: web.Request, required_token: Optional[str]) -> bool:
    if required_token is None:
        return True

    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return False
    return auth_header[7:] == required_token


def make_auth_middleware(api_token: Optional[str] = None):  # type: ignore[no-untyped-def]
    """Build the middleware resolving the caller's user id.

    Sessions live in front of this service; it only trusts the
    ``X-User-Id`` header, plus a shared bearer token when one is configured.
    """

    @web.middleware
    async def auth_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
        if request.path in PUBLIC_PATHS:
            return await handler(request)

        if not _check_bearer_token(request, api_token):
            logger.warning("Rejected request to %s: invalid bearer token", request.path)
            return web.json_response({"error": "Unauthorized"}, status=401)

        user_id = request.headers.get(USER_ID_HEADER, "").strip()
        if not user_id:
            return web.json_response({"error": "Not signed in"}, status=401)

        request["user_id"] = user_id
        return await handler(request)

    return auth_middleware


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Translate domain exceptions into JSON error responses."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except ValidationError as e:
        return web.json_response({"error": e.message, "field": e.field_name}, status=400)
    except SourceNotFoundError as e:
        return web.json_response({"error": e.message}, status=404)
    except SettingsError:
        logger.exception("Settings storage failure on %s %s", request.method, request.path)
        return web.json_response({"error": "Settings storage unavailable"}, status=500)
    except Exception:
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return web.json_response({"error": "Internal server error"}, status=500)
