"""
app/__init__.py — Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time, so tests can build isolated
         app instances and Alembic can load metadata without a server.

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Set the log level from LOG_LEVEL
  3. Initialise extensions (SQLAlchemy, Marshmallow) via init_app()
  4. Register all route blueprints under /api/v1
  5. Register global error handlers (AppError → JSON, Exception → 500)
  6. Register a custom JSON provider to serialise Decimal as string
"""

from __future__ import annotations

import logging
import traceback
from decimal import Decimal

from flask import Flask, jsonify, request
from flask.json.provider import DefaultJSONProvider
from marshmallow import ValidationError as SchemaValidationError

from roomsplit.config import active_config_name, config_by_name, validate_production_config


class DecimalJSONProvider(DefaultJSONProvider):
    """
    Serialises Decimal as str so that amounts never become JS numbers.

    Example: Decimal("10.50") → "10.50" (not 10.5)
    """

    def default(self, o):
        if isinstance(o, Decimal):
            return str(o)
        return super().default(o)


def create_app(config_name: str | None = None) -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to FLASK_ENV, falling back to development.
    """
    config_name = config_name or active_config_name()
    app = Flask(__name__)
    app.json_provider_class = DecimalJSONProvider
    app.json = DecimalJSONProvider(app)

    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    _configure_logging(app)

    from roomsplit.app.extensions import db, ma
    db.init_app(app)
    ma.init_app(app)

    # Populates SQLAlchemy metadata for create_all() and Alembic.
    with app.app_context():
        from roomsplit.app.models import (  # noqa: F401
            expense,
            notification,
            participant,
            profile,
            settlement,
        )

    _register_blueprints(app)
    _register_error_handlers(app)
    _register_cors(app)

    return app


def _configure_logging(app: Flask) -> None:
    """Applies LOG_LEVEL to the app logger and the roomsplit package loggers."""
    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO

    app.logger.setLevel(level)
    package_logger = logging.getLogger("roomsplit")
    package_logger.setLevel(level)
    if not package_logger.handlers and not logging.getLogger().handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s [%(name)s] %(message)s"
        ))
        package_logger.addHandler(handler)


def _register_blueprints(app: Flask) -> None:
    """
    Registers all route blueprints under /api/v1.

    expenses_bp and balances_bp sit directly on /api/v1 because they own
    more than one top-level resource path.
    """
    from roomsplit.app.routes.auth import auth_bp
    from roomsplit.app.routes.balances import balances_bp
    from roomsplit.app.routes.expenses import expenses_bp
    from roomsplit.app.routes.notifications import notifications_bp
    from roomsplit.app.routes.profiles import profiles_bp
    from roomsplit.app.routes.settlements import settlements_bp

    app.register_blueprint(auth_bp,          url_prefix="/api/v1/auth")
    app.register_blueprint(profiles_bp,      url_prefix="/api/v1/profiles")
    app.register_blueprint(expenses_bp,      url_prefix="/api/v1")
    app.register_blueprint(settlements_bp,   url_prefix="/api/v1/settlements")
    app.register_blueprint(balances_bp,      url_prefix="/api/v1")
    app.register_blueprint(notifications_bp, url_prefix="/api/v1/notifications")


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

      AppError               → structured JSON error with its own HTTP status
      marshmallow errors     → MISSING_FIELD / INVALID_FIELD / registered code (400)
      Exception              → INTERNAL_ERROR (500); traceback logged, never returned
    """
    from werkzeug.exceptions import HTTPException

    from roomsplit.app.errors import AppError, ErrorCode

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        if error.http_status >= 500:
            app.logger.error("%r", error)
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(SchemaValidationError)
    def handle_validation_error(error: SchemaValidationError):
        """
        Returns the FIRST schema error only.

        If the message is already a registered ErrorCode (e.g.
        INVALID_AMOUNT_PRECISION raised by a schema validator) it is used
        as the code; otherwise MISSING_FIELD or INVALID_FIELD.
        """
        known_codes = set(vars(ErrorCode).values())
        field, raw_message = _first_schema_error(error.messages)

        if raw_message in known_codes:
            code = raw_message
            message = _code_to_message(code)
        elif raw_message.startswith("Missing data for required field"):
            code = ErrorCode.MISSING_FIELD
            message = raw_message
        else:
            code = ErrorCode.INVALID_FIELD
            message = raw_message

        body = {"error": {"code": code, "message": message}}
        if field is not None:
            body["error"]["field"] = field
        return jsonify(body), 400

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        return jsonify({
            "error": {
                "code": error.name.upper().replace(" ", "_"),
                "message": error.description,
            }
        }), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        app.logger.error(
            "Unhandled exception: %s\n%s",
            str(error),
            traceback.format_exc(),
        )
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500


def _first_schema_error(messages, prefix: str | None = None) -> tuple[str | None, str]:
    """
    Walks marshmallow's nested messages to the first leaf.

    {"expenses": {0: {"share_amount": ["..."]}}} → ("expenses.0.share_amount", "...")
    """
    if isinstance(messages, dict):
        for key, value in messages.items():
            if key == "_schema":
                return _first_schema_error(value, prefix)
            name = f"{prefix}.{key}" if prefix else str(key)
            return _first_schema_error(value, name)
    if isinstance(messages, list) and messages:
        first = messages[0]
        if isinstance(first, (dict, list)):
            return _first_schema_error(first, prefix)
        return prefix, str(first)
    if isinstance(messages, str):
        return prefix, messages
    return prefix, "Invalid input."


def _register_cors(app: Flask) -> None:
    """
    Adds CORS headers for browser-based local development.

    Enabled when DEBUG or TESTING is true so a frontend on another local
    port can call the API with Authorization headers.
    """

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allow_all = bool(app.config.get("DEBUG") or app.config.get("TESTING"))

        if allow_all:
            response.headers["Access-Control-Allow-Origin"] = origin if origin else "*"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PATCH, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"

        return response


def _code_to_message(code: str) -> str:
    """Default human-readable message when a schema error IS an error code."""
    _messages = {
        "INVALID_AMOUNT_PRECISION": "Amount must have at most 2 decimal places.",
        "INVALID_CATEGORY": "The category value is not valid.",
        "INVALID_UPI_ID": "UPI id must look like name@bank.",
    }
    return _messages.get(code, "Invalid input.")
