"""Proxy endpoint for AI inference requests.

The same handler is reachable under the serverless function path the
front-end was built against and under a plain ``/api`` prefix. Any
sub-path containing ``/stats`` serves usage statistics on GET.
"""

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from aiproxy.app.middleware.request_id import get_request_id
from aiproxy.app.services.admission import (
    ProxyResponse,
    RequestAdmissionHandler,
    get_admission_handler,
)

router = APIRouter()

PROXY_PATHS = ("/api/ai-proxy", "/.netlify/functions/ai-proxy")

# Every method is routed here so unsupported ones get the proxy's own 405 body.
ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]


def to_http_response(result: ProxyResponse) -> Response:
    if result.body is None:
        return Response(
            content=b"", status_code=result.status_code, headers=result.headers
        )
    return JSONResponse(
        content=result.body, status_code=result.status_code, headers=result.headers
    )


async def ai_proxy(
    request: Request,
    handler: RequestAdmissionHandler = Depends(get_admission_handler),
) -> Response:
    body = await request.body() if request.method == "POST" else b""
    result = await handler.handle(
        method=request.method,
        path=request.url.path,
        headers=request.headers,
        body=body,
        request_id=get_request_id(request),
    )
    return to_http_response(result)


for _path in PROXY_PATHS:
    router.add_api_route(_path, ai_proxy, methods=ALL_METHODS)
    router.add_api_route(f"{_path}/{{subpath:path}}", ai_proxy, methods=ALL_METHODS)
