"""Health check endpoint."""

from flask import Blueprint, jsonify
from sqlalchemy import text

from ..extensions import db

bp = Blueprint("health", __name__)


@bp.get("/health")
def health() -> tuple[dict[str, str], int]:
    """Report liveness together with database reachability.

    A failing database surfaces through the storage error handler as 503.
    """
    db.session.execute(text("SELECT 1"))
    return jsonify({"status": "ok", "database": "ok"}), 200
