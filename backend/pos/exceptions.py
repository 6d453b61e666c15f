import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler, set_rollback

logger = logging.getLogger(__name__)


def _first_message(detail):
    if isinstance(detail, dict):
        for value in detail.values():
            message = _first_message(value)
            if message:
                return message
        return ""
    if isinstance(detail, (list, tuple)):
        for value in detail:
            message = _first_message(value)
            if message:
                return message
        return ""
    return str(detail)


def api_exception_handler(exc, context):
    """Render DRF errors as ``{"error": "..."}``, keeping field errors under ``details``."""
    response = exception_handler(exc, context)
    if response is None:
        view = context.get("view")
        logger.error(
            "Unhandled error in %s",
            type(view).__name__ if view else "view",
            exc_info=exc,
        )
        set_rollback()
        return Response(
            {"error": "Internal server error"},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    data = response.data
    if isinstance(data, dict) and set(data) == {"detail"}:
        body = {"error": str(data["detail"])}
    else:
        body = {"error": _first_message(data) or "Invalid request", "details": data}
    if response.status_code >= 500:
        logger.error("API error %s: %s", response.status_code, body["error"])
    else:
        logger.info("API error %s: %s", response.status_code, body["error"])
    response.data = body
    return response
