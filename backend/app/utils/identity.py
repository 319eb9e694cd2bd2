"""Helpers for resolving the acting user of a request.

Authentication happens upstream; the gateway forwards the authenticated
user id in the ``X-User-Id`` header.
"""

from __future__ import annotations

import functools
from collections.abc import Callable
from http import HTTPStatus
from typing import Any, TypeVar, cast

from flask import g, has_request_context, jsonify, request

TCallable = TypeVar("TCallable", bound=Callable[..., Any])

USER_HEADER = "X-User-Id"
MAX_USER_ID_LENGTH = 64


def get_acting_user_id() -> str | None:
    """Return the user id forwarded with the current request, if any."""

    if not has_request_context():
        return None
    value = (request.headers.get(USER_HEADER) or "").strip()
    if not value or len(value) > MAX_USER_ID_LENGTH:
        return None
    return value


def _unauthorized(message: str):
    response = jsonify({"error": message})
    response.status_code = HTTPStatus.UNAUTHORIZED
    return response


def require_user(func: TCallable) -> TCallable:
    """Decorator rejecting requests that do not identify the acting user."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        user_id = get_acting_user_id()
        if user_id is None:
            return _unauthorized(f"missing {USER_HEADER} header")
        g.user_id = user_id
        return func(*args, **kwargs)

    return cast(TCallable, wrapper)
