import os
import time
from pathlib import Path
import logging
from logging.handlers import RotatingFileHandler
from flask import Flask, jsonify, request, g
from .extensions import db, migrate, login_manager, mail
from .config import Config

# Blueprints
from .blueprints.errors import errors_bp
from .blueprints.jobs import jobs_bp
from .blueprints.escrow import escrow_bp
from .blueprints.payouts import payouts_bp
from .blueprints.reviews import reviews_bp
from .blueprints.cron import cron_bp


# Optional: Sentry
def _init_sentry(app):
    dsn = app.config.get("SENTRY_DSN")
    if not dsn:
        return
    try:
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration
        from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

        sentry_sdk.init(
            dsn=dsn,
            integrations=[FlaskIntegration(), SqlalchemyIntegration()],
            traces_sample_rate=app.config.get("SENTRY_TRACES_SAMPLE_RATE", 0.0),
            environment=os.getenv("ENV", "development"),
            release=os.getenv("GIT_COMMIT", None),
            send_default_pii=False,
        )
        app.logger.info("Sentry initialized.")
    except Exception as e:
        app.logger.warning(f"Sentry init failed: {e}")


def _init_logging(app):
    level_name = app.config.get("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    app.logger.setLevel(level)

    log_dir = Path(app.config.get("LOG_DIR", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / app.config.get("LOG_FILENAME", "eventcare.log")

    # Formatter: text or JSON
    if app.config.get("LOG_JSON", False):
        try:
            import json_log_formatter
            formatter = json_log_formatter.JSONFormatter()
        except Exception:
            formatter = logging.Formatter("[%(asctime)s] %(levelname)s in %(module)s: %(message)s")
    else:
        formatter = logging.Formatter("[%(asctime)s] %(levelname)s in %(module)s: %(message)s")

    # Rotating file handler (5MB x 5)
    file_handler = RotatingFileHandler(
        log_path, maxBytes=5_000_000, backupCount=5, encoding="utf-8"
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(formatter)

    # service modules log under "eventcare.*"; the app logger is "eventcare" too
    pkg_logger = logging.getLogger("eventcare")
    pkg_logger.setLevel(level)
    for handler in list(pkg_logger.handlers):
        if getattr(handler, "_eventcare", False):
            pkg_logger.removeHandler(handler)
            handler.close()
    for handler in (file_handler, stream_handler):
        handler._eventcare = True
        pkg_logger.addHandler(handler)

    # audit events that could not be stored must survive somewhere
    fallback = logging.getLogger("eventcare.audit.fallback")
    fallback.setLevel(logging.WARNING)

    app.logger.info("Logging initialized.")


def _init_request_logging(app):
    log = logging.getLogger("eventcare.request")

    @app.before_request
    def _start_timer():
        g._started = time.perf_counter()

    @app.after_request
    def _log_request(response):
        started = g.pop("_started", None)
        elapsed_ms = (time.perf_counter() - started) * 1000 if started else 0.0
        log.info("%s %s -> %s (%.1fms)", request.method, request.path, response.status_code, elapsed_ms)
        return response


def create_app(config_object=None):
    app = Flask(__name__, instance_relative_config=True)

    if config_object is None:
        app.config.from_object(Config)
    else:
        app.config.from_object(config_object)

    app.config.setdefault("SECRET_KEY", "change-me")
    app.config.setdefault(
        "SQLALCHEMY_DATABASE_URI",
        "sqlite:///" + os.path.join(app.instance_path, "eventcare.db"),
    )
    app.config.setdefault("SQLALCHEMY_TRACK_MODIFICATIONS", False)
    app.config.setdefault("WTF_CSRF_ENABLED", False)
    app.config.setdefault("MAX_CONTENT_LENGTH", 1 * 1024 * 1024)
    Path(app.instance_path).mkdir(parents=True, exist_ok=True)

    from .services.payouts import check_payout_day
    app.config["SCHEDULED_PAYOUT_DAY"] = check_payout_day(app.config.get("SCHEDULED_PAYOUT_DAY", 15))

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    mail.init_app(app)

    # registers the token loaders on login_manager
    from . import security  # noqa: F401

    # Logging must come before blueprints so errors during register are captured
    _init_logging(app)
    _init_sentry(app)
    _init_request_logging(app)

    # Blueprints
    app.register_blueprint(errors_bp)  # error handlers
    app.register_blueprint(jobs_bp)
    app.register_blueprint(escrow_bp, url_prefix="/escrow")
    app.register_blueprint(payouts_bp)
    app.register_blueprint(reviews_bp)
    app.register_blueprint(cron_bp, url_prefix="/cron")

    @app.get("/health")
    def health():
        return jsonify({"success": True, "data": {"status": "ok", "version": app.config.get("APP_VERSION")}})

    return app
