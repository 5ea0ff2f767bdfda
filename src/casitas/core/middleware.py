"""Middleware for HTTP error logging."""

import logging
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from casitas.core.logging import upload_id_context

logger = logging.getLogger(__name__)


class HTTPErrorLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to ensure all HTTP errors are logged.

    - 4xx responses: logged at WARN level
    - 5xx responses: logged at ERROR level
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        upload_id = None
        record_id = None

        # Multipart chunk bodies are left alone; only JSON bodies are inspected
        content_type = request.headers.get("content-type", "")
        if request.method in ["POST", "PUT", "PATCH"] and content_type.startswith("application/json"):
            try:
                body = await request.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                upload_id = body.get("uploadId")
                record_id = body.get("recordId")

        token = upload_id_context.set(upload_id)
        try:
            response = await call_next(request)
        finally:
            upload_id_context.reset(token)

        duration_ms = (time.time() - start_time) * 1000

        if 400 <= response.status_code < 500:
            logger.warning(
                "Client error response",
                extra={
                    "http_status": response.status_code,
                    "method": request.method,
                    "path": request.url.path,
                    "upload_id": upload_id,
                    "record_id": record_id,
                    "duration_ms": duration_ms,
                },
            )
        elif response.status_code >= 500:
            logger.error(
                "Server error response",
                extra={
                    "http_status": response.status_code,
                    "method": request.method,
                    "path": request.url.path,
                    "upload_id": upload_id,
                    "record_id": record_id,
                    "duration_ms": duration_ms,
                },
            )

        return response
