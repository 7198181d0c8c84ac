from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

if TYPE_CHECKING:
    from fastapi_pulse.config import PulseConfig

_ANONYMOUS = "anonymous"
# Mounted at the app root by the health router, outside api_prefix.
_HEALTH_PATHS = ("/health", "/metrics")


def _client_ip(request: Request) -> Optional[str]:
    if request.client:
        return request.client.host
    return None


def _caller_identity(request: Request) -> str:
    """Authenticated user id when an upstream auth layer set one."""
    user: Any = getattr(request.state, "user", None) or request.scope.get("user")
    if user is None:
        return _ANONYMOUS
    for attr in ("id", "identity", "username"):
        value = getattr(user, attr, None)
        if value:
            return str(value)
    if isinstance(user, dict) and user.get("id"):
        return str(user["id"])
    return _ANONYMOUS


def _endpoint_path(request: Request) -> str:
    # Use route template (/items/{item_id}) instead of concrete path (/items/3321)
    route = request.scope.get("route")
    if route is not None and hasattr(route, "path"):
        return route.path
    return request.url.path


class PerformanceMiddleware(BaseHTTPMiddleware):
    """
    Observes every HTTP request and hands the result to ``PulseMetrics``.

    - ``begin_request()`` runs before the downstream handler (start time + memory).
    - ``end_request()`` runs once the response is produced, with the status code,
      method, route path and caller identity.
    - The request id is stored at ``request.state.request_id`` and returned as
      the ``X-Request-ID`` response header.

    When the handler raises, the request is recorded as a 500 and the exception
    propagates to the registered exception handlers untouched.
    Silently skips recording if ``metrics_instance`` is not yet initialised.
    """

    def __init__(self, app, config: "PulseConfig") -> None:
        super().__init__(app)
        self._config = config

    def _skip(self, request: Request) -> bool:
        if self._config.track_own_routes:
            return False
        path = request.url.path
        prefix = self._config.api_prefix.rstrip("/")
        prefixes = [prefix] if prefix else []
        if self._config.include_health_routes:
            prefixes.extend(_HEALTH_PATHS)
        return any(path == p or path.startswith(p + "/") for p in prefixes)

    def _finish(self, request: Request, context, status_code: int) -> None:
        metrics = self._config.metrics_instance
        metrics.end_request(
            context,
            status_code,
            meta={
                "method": request.method,
                "path": _endpoint_path(request),
                "ip": _client_ip(request),
                "user": _caller_identity(request),
                "user_agent": request.headers.get("user-agent"),
            },
        )

    async def dispatch(self, request: Request, call_next) -> Response:
        metrics = self._config.metrics_instance
        if metrics is None or self._skip(request):
            return await call_next(request)

        context = metrics.begin_request()
        request.state.request_id = context.request_id
        request.state.start_time = context.start
        try:
            response = await call_next(request)
        except Exception:
            self._finish(request, context, 500)
            raise
        self._finish(request, context, response.status_code)
        response.headers["X-Request-ID"] = context.request_id
        return response
