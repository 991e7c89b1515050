"""相関IDミドルウェア — リクエスト追跡"""

import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from src.monitoring.logging import correlation_id_var, workspace_id_var


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """各リクエストに一意の相関IDを付与"""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))
        correlation_id_var.set(correlation_id)

        workspace_id = request.headers.get("X-Workspace-ID", "")
        if workspace_id:
            workspace_id_var.set(workspace_id)

        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id

        return response
