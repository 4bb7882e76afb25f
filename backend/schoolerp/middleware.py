import logging
import time
from typing import Callable

from django.conf import settings
from django.http import HttpRequest, HttpResponse

logger = logging.getLogger('django.request')


def _user_label(request: HttpRequest) -> str:
    user = getattr(request, 'user', None)
    if user is not None and getattr(user, 'is_authenticated', False):
        return user.get_username()
    return 'anonymous'


class SlowRequestLoggingMiddleware:
    """Log API requests whose wall time exceeds ``SLOW_REQUEST_LOG_MS``."""

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]):
        self.get_response = get_response

    def __call__(self, request: HttpRequest):
        if not getattr(settings, 'SLOW_REQUEST_LOG_ENABLED', True):
            return self.get_response(request)

        threshold_ms = int(getattr(settings, 'SLOW_REQUEST_LOG_MS', 1200))
        started = time.perf_counter()
        response = self.get_response(request)
        elapsed_ms = (time.perf_counter() - started) * 1000.0

        if elapsed_ms >= threshold_ms:
            logger.warning(
                'slow request method=%s path=%s status=%s duration_ms=%.2f user=%s',
                request.method,
                request.path,
                getattr(response, 'status_code', 'NA'),
                elapsed_ms,
                _user_label(request),
            )
        return response
