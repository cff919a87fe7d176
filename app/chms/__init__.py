import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, request
from werkzeug.exceptions import HTTPException

from app.chms.admin import bp as admin_bp
from app.chms.auth import bp as auth_bp, load_current_user
from app.chms.config import load_config
from app.chms.db import init_db, rollback_db_session, teardown_db_session
from app.chms.errors import ServiceError
from app.chms.modules.budgets.admin import bp as budgets_bp
from app.chms.modules.communications.admin import bp as communications_bp
from app.chms.modules.contributions.admin import bp as contributions_bp
from app.chms.modules.dashboard.admin import bp as dashboard_bp
from app.chms.modules.engagement.admin import bp as engagement_bp
from app.chms.modules.events.admin import bp as events_bp
from app.chms.modules.families.admin import bp as families_bp
from app.chms.modules.finance.admin import bp as finance_bp
from app.chms.modules.groups.admin import bp as groups_bp
from app.chms.modules.members.admin import bp as members_bp
from app.chms.modules.membership_types.admin import bp as membership_types_bp
from app.chms.modules.permissions.admin import bp as permissions_bp
from app.chms.modules.volunteers.admin import bp as volunteers_bp
from app.chms.routes import bp as routes_bp

_UNGUARDED_PREFIXES = ("/static/", "/health", "/healthz")


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True
    app.logger.setLevel(app.config.get("LOG_LEVEL") or "INFO")

    from app.chms.security import ensure_csrf_token, validate_csrf

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(_UNGUARDED_PREFIXES):
            return None
        ensure_csrf_token()
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # login/logout carry their own checks
            if (request.endpoint or "").startswith("auth."):
                return None
            if not validate_csrf(request):
                return {"status": "error", "message": "CSRF token missing or invalid.", "code": 400}, 400

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres or MySQL in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

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

    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [k for k in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY") if not app.config.get(k)]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))

    if app.config.get("SMS_PROVIDER") not in ("hubtel", "textme", "generic"):
        app.logger.error("SMS CONFIG ERROR: Unknown SMS_PROVIDER %r", app.config.get("SMS_PROVIDER"))

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(admin_bp, url_prefix="/admin")
    app.register_blueprint(members_bp, url_prefix="/admin")
    app.register_blueprint(families_bp, url_prefix="/admin")
    app.register_blueprint(groups_bp, url_prefix="/admin")
    app.register_blueprint(communications_bp, url_prefix="/admin")
    app.register_blueprint(membership_types_bp, url_prefix="/admin")
    app.register_blueprint(permissions_bp, url_prefix="/admin")
    app.register_blueprint(finance_bp, url_prefix="/admin")
    app.register_blueprint(budgets_bp, url_prefix="/admin")
    app.register_blueprint(contributions_bp, url_prefix="/admin")
    app.register_blueprint(events_bp, url_prefix="/admin")
    app.register_blueprint(volunteers_bp, url_prefix="/admin")
    app.register_blueprint(engagement_bp, url_prefix="/admin")
    app.register_blueprint(dashboard_bp, url_prefix="/admin")

    def _load_user_wrapper():
        if request.path.startswith(_UNGUARDED_PREFIXES):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(ServiceError)
    def _service_error(e: ServiceError):  # type: ignore[no-redef]
        rollback_db_session()
        app.logger.info(
            "Request rejected (%s %s): %s request_id=%s",
            e.status_code,
            type(e).__name__,
            e.message,
            getattr(g, "request_id", None),
        )
        headers = {}
        retry_after = getattr(e, "retry_after", None)
        if retry_after is not None:
            headers["Retry-After"] = str(retry_after)
        return e.to_dict(), e.status_code, headers

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):  # type: ignore[no-redef]
        rollback_db_session()
        if e.code == 403:
            missing = getattr(g, "missing_permission", None)
            if missing:
                app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
        messages = {
            401: "Authentication required.",
            403: "You do not have permission to perform this action.",
            404: "Not found.",
            413: "File too large. Maximum size is 5MB.",
        }
        code = e.code or 500
        return {"status": "error", "message": messages.get(code, e.description or e.name), "code": code}, code

    @app.errorhandler(Exception)
    def _err_500(e):  # type: ignore[no-redef]
        rollback_db_session()
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return {"status": "error", "message": "Internal server error.", "code": 500}, 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
