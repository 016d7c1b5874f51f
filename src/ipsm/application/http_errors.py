from __future__ import annotations

import logging
from dataclasses import dataclass

from ipsm.domain.errors import AppError, ConflictError, NotFoundError, ValidationError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class HttpError:
    status: int
    message: str


def to_http_error(exc: BaseException) -> HttpError:
    """Plain status + message for an exception; nothing internal leaks for unknown errors."""
    if isinstance(exc, ValidationError):
        return HttpError(400, str(exc))
    if isinstance(exc, NotFoundError):
        return HttpError(404, str(exc))
    if isinstance(exc, ConflictError):
        return HttpError(409, str(exc))
    if isinstance(exc, AppError):
        log.error("app_error type=%s error=%s", type(exc).__name__, exc)
        return HttpError(500, str(exc) or "Internal server error")
    log.error("unhandled_error type=%s", type(exc).__name__, exc_info=exc)
    return HttpError(500, "Internal server error")
