"""Per-request correlation IDs.

Each response carries an ``X-Request-ID`` header and the same value is
attached to the proxy's log lines, so one request can be followed from the
edge through to the inference call.
"""

import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

# Longest client-supplied ID that is echoed back as-is
MAX_REQUEST_ID_LENGTH = 128


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Reuse the caller's request ID when it is sane, otherwise mint a UUID4.

    The chosen ID is stored on ``request.state`` and echoed in the response.
    """

    def __init__(self, app, header_name: str = "X-Request-ID"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        supplied = request.headers.get(self.header_name, "").strip()
        if supplied and len(supplied) <= MAX_REQUEST_ID_LENGTH:
            request_id = supplied
        else:
            request_id = uuid.uuid4().hex

        request.state.request_id = request_id
        response = await call_next(request)
        response.headers[self.header_name] = request_id
        return response


def get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")
