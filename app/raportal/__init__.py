import logging
import os

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

from app.raportal import models  # noqa: F401  (registers every table on Base.metadata)
from app.raportal.config import load_config
from app.raportal.db import init_db, session_scope, teardown_db_session
from app.raportal.errors import ServiceError
from app.raportal.routes import bp as routes_bp
from app.raportal.auth import bp as auth_bp, load_current_user
from app.raportal.modules.users.routes import bp as users_bp
from app.raportal.modules.associations.routes import bp as associations_bp
from app.raportal.modules.exams.routes import bp as exams_bp
from app.raportal.modules.payments.routes import bp as payments_bp
from app.raportal.modules.camps.routes import bp as camps_bp
from app.raportal.modules.notifications.routes import bp as notifications_bp
from app.raportal.modules.blog.routes import bp as blog_bp
from app.raportal.modules.gallery.routes import bp as gallery_bp
from app.raportal.modules.announcements.routes import bp as announcements_bp
from app.raportal.modules.public.routes import bp as public_bp
from app.raportal.modules.exports.routes import bp as exports_bp
from app.raportal.modules.dashboards.routes import bp as dashboards_bp

API_BLUEPRINTS = (
    users_bp,
    associations_bp,
    exams_bp,
    payments_bp,
    camps_bp,
    notifications_bp,
    blog_bp,
    gallery_bp,
    announcements_bp,
    public_bp,
    exports_bp,
    dashboards_bp,
)


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.json.sort_keys = False

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
        if not app.config.get("JWT_SECRET") or str(app.config["JWT_SECRET"]) in ("", "change-me"):
            raise RuntimeError("JWT_SECRET must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    # Storage health check (fail loudly on misconfiguration)
    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = []
        for key in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
            if not app.config.get(key):
                missing_s3.append(key)
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))
        else:
            try:
                from app.raportal.storage import storage_from_config, S3Storage
                storage = storage_from_config(app.config)
                if isinstance(storage, S3Storage):
                    storage._client().head_bucket(Bucket=storage.bucket)
                    app.logger.info("Storage health check PASSED: S3 bucket '%s' accessible", storage.bucket)
            except Exception as e:
                app.logger.error("STORAGE CONFIG ERROR: Cannot access S3 bucket: %s", e)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    for bp in API_BLUEPRINTS:
        app.register_blueprint(bp, url_prefix="/api")

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(ServiceError)
    def _service_error(e: ServiceError):  # type: ignore[no-redef]
        if e.status_code >= 500:
            app.logger.error("Service error (request_id=%s): %s", getattr(g, "request_id", None), e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        limit_mb = (app.config.get("MAX_CONTENT_LENGTH") or 0) // (1024 * 1024)
        return jsonify({"error": "payload_too_large", "message": f"Request body too large. Maximum size is {limit_mb}MB."}), 413

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):  # type: ignore[no-redef]
        kind = (e.name or "error").strip().lower().replace(" ", "_")
        return jsonify({"error": kind, "message": e.description}), e.code or 500

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s) path=%s", getattr(g, "request_id", None), request.path)
        return jsonify({"error": "internal_error", "message": "An unexpected error occurred."}), 500

    if app.config.get("SEED_ON_START"):
        # best-effort; a failed seed must not keep the app from booting
        from app.raportal.modules.associations.service import seed_reference_data

        try:
            with session_scope(app) as s:
                seed_reference_data(s)
            app.logger.info("Seeded roles and official associations.")
        except Exception as e:
            app.logger.error("Startup seeding failed: %s", e)

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
