"""Extensions used by the Flask application."""

from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_sqlalchemy import SQLAlchemy

from .utils.identity import get_acting_user_id


def _limiter_key_func() -> str:
    user_id = get_acting_user_id()
    if user_id is not None:
        return f"user:{user_id}"
    return get_remote_address()


db = SQLAlchemy()
cors = CORS()
limiter = Limiter(key_func=_limiter_key_func, default_limits=[])

__all__ = ["db", "cors", "limiter"]
