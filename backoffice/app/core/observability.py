"""
Observability middleware and logging setup.

Adds correlation IDs and structured request logs. Ledger services log under
their own module loggers; everything shares the root configuration below.
"""

import time
import uuid
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from backoffice.app.core.config import settings

logger = logging.getLogger("backoffice")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = None) -> None:
    """Configure root logging once at startup."""
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper(), logging.INFO),
        format=LOG_FORMAT,
    )


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))
        start_time = time.time()

        response = await call_next(request)

        process_time = (time.time() - start_time) * 1000  # ms

        response.headers["X-Correlation-ID"] = correlation_id
        response.headers["X-Process-Time"] = str(process_time)

        log_data = {
            "correlation_id": correlation_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round(process_time, 2),
            "ip": request.client.host if request.client else "unknown"
        }

        if response.status_code >= 500:
            logger.error("Request Failed", extra=log_data)
        elif response.status_code >= 400:
            logger.warning("Request Error", extra=log_data)
        else:
            logger.info("Request API", extra=log_data)

        return response
