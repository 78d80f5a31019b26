"""Catch-all route forwarding every other request to the upstream."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response

from quota_proxy.core.dependencies import get_request_handler
from quota_proxy.services.request_handler import RequestHandler

router = APIRouter(tags=["Proxy"])

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


@router.api_route("/{full_path:path}", methods=PROXY_METHODS, include_in_schema=False)
async def proxy(
    request: Request,
    handler: Annotated[RequestHandler, Depends(get_request_handler)],
) -> Response:
    """Rate limit and forward the request, preserving path and query verbatim."""
    return await handler.handle(request)
