"""
Core views providing infrastructure endpoints and error translation.

This module contains:
- health_check: liveness/readiness endpoint for orchestration
- service_error_response: REST response for a failed ServiceResult
- api_exception_handler: DRF exception handler for domain errors

Client-boundary rule:
    Error bodies carry only the error category ({"error": "NOT_FOUND"}).
    Messages, codes and details are logged server-side.
"""

import logging

from django.db import connection
from django.http import JsonResponse
from rest_framework.response import Response
from rest_framework.views import exception_handler

from core.exceptions import BaseApplicationError, ErrorCategory

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Health check endpoint for monitoring and orchestration.

    Returns:
        JsonResponse with status and component health:
        - status: "healthy" or "unhealthy"
        - database: "connected" or "disconnected"
        - cache: "connected" or "disconnected" (cache failures degrade only)

    HTTP Status Codes:
        200: All systems operational
        503: Database unreachable
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "cache": "unknown",
    }
    is_healthy = True

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except Exception:
        logger.exception("Health check: database unreachable")
        health_status["database"] = "disconnected"
        health_status["status"] = "unhealthy"
        is_healthy = False

    try:
        from django.core.cache import cache

        cache.set("health_check", "ok", timeout=1)
        if cache.get("health_check") == "ok":
            health_status["cache"] = "connected"
        else:
            health_status["cache"] = "disconnected"
    except Exception:
        # Fan-out versions degrade without the cache, requests still work
        logger.warning("Health check: cache unreachable", exc_info=True)
        health_status["cache"] = "disconnected"

    status_code = 200 if is_healthy else 503

    return JsonResponse(health_status, status=status_code)


def service_error_response(result) -> Response:
    """
    Build the REST response for a failed ServiceResult.

    Example:
        result = MessageService.append_message(...)
        if not result.success:
            return service_error_response(result)
    """
    logger.info(
        f"Request failed: {result.error_code} ({result.category}): {result.error}"
    )
    return Response(
        result.to_response(),
        status=ErrorCategory.http_status_for(result.category),
    )


# DRF statuses that do not come from a BaseApplicationError
_STATUS_CATEGORIES = {
    400: ErrorCategory.VALIDATION,
    401: ErrorCategory.PERMISSION,
    403: ErrorCategory.PERMISSION,
    404: ErrorCategory.NOT_FOUND,
    405: ErrorCategory.VALIDATION,
    409: ErrorCategory.CONFLICT,
    413: ErrorCategory.VALIDATION,
    415: ErrorCategory.VALIDATION,
    429: ErrorCategory.RATE_LIMITED,
}


def api_exception_handler(exc, context):
    """
    DRF exception handler that keeps error bodies category-only.

    Domain errors raised from views (e.g. during topic parsing) map through
    their category. DRF's own errors (serializer validation, authentication,
    throttling) keep their status code but lose their detail, which is
    logged instead.
    """
    view = context.get("view")
    view_name = view.__class__.__name__ if view else "view"

    if isinstance(exc, BaseApplicationError):
        logger.info(f"{view_name} raised {exc!r}")
        return Response(exc.to_client_dict(), status=exc.http_status)

    response = exception_handler(exc, context)
    if response is None:
        return None

    logger.info(f"{view_name} rejected request ({response.status_code}): {response.data}")
    response.data = {
        "error": _STATUS_CATEGORIES.get(response.status_code, ErrorCategory.INTERNAL)
    }
    return response
