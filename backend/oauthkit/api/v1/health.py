"""Health check endpoint."""

from __future__ import annotations

from flask import Blueprint, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from oauthkit.api.deps import json_response, timing
from oauthkit.core.extensions import db
from oauthkit.core.oauth import get_consumer

bp = Blueprint("health", __name__)


@bp.get("/health")
@timing
def healthcheck():
    """Return application, database and token cache configuration health."""

    db_status = "ok"
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError:  # pragma: no cover - depends on DB backend
        current_app.logger.exception("healthcheck.db_error")
        db_status = "fail"
    consumer = get_consumer()
    payload = {
        "status": "ok",
        "db": db_status,
        "environment": consumer.environment,
        "caches": consumer.cache.names(),
        "services": consumer.registry.names(),
        "version": current_app.config.get("APP_VERSION", "dev"),
    }
    return json_response(payload)
