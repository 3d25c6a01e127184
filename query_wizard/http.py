"""
HTTP helpers for views using the query wizard.
"""

import functools
import logging

from django.http import JsonResponse

from .exceptions import InvalidQuery

logger = logging.getLogger(__name__)


def invalid_query_response(exc: InvalidQuery) -> JsonResponse:
    """Client-facing 400 response for a rejected query."""
    return JsonResponse({"error": "Invalid query", **exc.as_dict()}, status=exc.status_code)


def handle_invalid_query(view_func):
    """Turn ``InvalidQuery`` raised by a view into ``invalid_query_response``."""

    @functools.wraps(view_func)
    def wrapper(request, *args, **kwargs):
        try:
            return view_func(request, *args, **kwargs)
        except InvalidQuery as exc:
            logger.info(
                "Rejected query on %s: %s",
                request.path,
                exc,
                extra={"capability": exc.capability},
            )
            return invalid_query_response(exc)

    return wrapper
