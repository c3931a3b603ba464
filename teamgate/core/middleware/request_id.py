import logging
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from teamgate.core.logging import request_id_ctx_var, latency_bucket_ms


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag each request with a request_id and log one completion line with its team context."""

    def __init__(self, app, header_name: str = "x-request-id", team_header: str = "x-team-id"):
        super().__init__(app)
        self.header_name = header_name
        self.team_header = team_header

    async def dispatch(self, request, call_next):
        rid = request.headers.get(self.header_name) or str(uuid4())
        request.state.request_id = rid
        token = request_id_ctx_var.set(rid)

        started = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            request_id_ctx_var.reset(token)
        elapsed_ms = (time.perf_counter() - started) * 1000

        response.headers[self.header_name] = rid
        logging.getLogger("teamgate").info(
            "request.complete",
            extra={
                "request_id": rid,
                "path": request.url.path,
                "method": request.method,
                "status": response.status_code,
                "team_id": request.headers.get(self.team_header),
                "latency_bucket": latency_bucket_ms(elapsed_ms),
            },
        )
        return response
