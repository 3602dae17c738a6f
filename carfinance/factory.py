# -*- coding: utf-8 -*-
# ===================================================================
# 🚗 Car Finance – recommendations, quotes, documents, sales portal
# ===================================================================

import os, logging, uuid
import time as pytime
from urllib.parse import urlparse

import click
from flask import Flask, request, g
from flask_login import current_user
from werkzeug.middleware.proxy_fix import ProxyFix
from werkzeug.exceptions import RequestEntityTooLarge, NotFound, MethodNotAllowed

from google import genai as genai3

import carfinance.extensions as extensions
from carfinance.extensions import db, login_manager, migrate, GEMINI_RECOMMENDER_MODEL_ID
from carfinance.exceptions import AccessError, ValidationError
from carfinance.access import ROLE_SALES
from carfinance.quota import parse_sales_emails, PER_IP_PER_MIN_LIMIT
from carfinance.utils.http_helpers import api_error, get_request_id, log_rejection
from carfinance.services.document_service import MAX_UPLOAD_BYTES
from carfinance.services.recommendation_service import AI_CALL_TIMEOUT_SEC
import carfinance.auth as auth  # registers the Flask-Login loaders
import carfinance.models  # noqa: F401  (tables for create_all)

TOKEN_TTL_HOURS = 24 * 7
# Multipart framing on top of the file itself
UPLOAD_ENVELOPE_BYTES = 64 * 1024


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes")


def create_app():
    app = Flask(__name__)

    # Configure Python logging (structured logging to stdout)
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    logger = logging.getLogger(__name__)

    # ProxyFix parameterization (Render proxy chain)
    trusted_proxy_count = int(os.environ.get("TRUSTED_PROXY_COUNT", "1"))
    app.wsgi_app = ProxyFix(
        app.wsgi_app,
        x_for=trusted_proxy_count,
        x_proto=trusted_proxy_count,
        x_host=trusted_proxy_count,
        x_prefix=0
    )
    logger.info(f"ProxyFix configured with trusted_proxy_count={trusted_proxy_count}")

    # ======================
    # ✅ Render DB hard-fail
    # ======================
    db_url = os.environ.get("DATABASE_URL", "").strip()
    secret_key = os.environ.get("SECRET_KEY", "").strip()

    # Normalize deprecated prefix for SQLAlchemy
    if db_url.startswith("postgres://"):
        db_url = db_url.replace("postgres://", "postgresql://", 1)

    is_render = os.environ.get("RENDER", "").strip() != ""
    if is_render and not db_url:
        raise RuntimeError(
            "DATABASE_URL is missing on Render. "
            "Set DATABASE_URL (Internal Postgres URL) in Render Environment Variables."
        )
    if is_render and not secret_key:
        raise RuntimeError(
            "SECRET_KEY is missing on Render. "
            "Set SECRET_KEY in Render Environment Variables."
        )

    max_upload_bytes = int(os.environ.get("MAX_UPLOAD_BYTES", str(MAX_UPLOAD_BYTES)))

    # Config
    app.config["SQLALCHEMY_DATABASE_URI"] = db_url if db_url else "sqlite:///:memory:"
    app.config["SECRET_KEY"] = secret_key if secret_key else "dev-secret-key-that-is-not-secret"
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["MAX_UPLOAD_BYTES"] = max_upload_bytes
    app.config["MAX_CONTENT_LENGTH"] = max_upload_bytes + UPLOAD_ENVELOPE_BYTES
    app.config["UPLOAD_FOLDER"] = os.environ.get("UPLOAD_FOLDER", "").strip() or os.path.join(app.instance_path, "uploads")
    app.config["SALES_EMAILS"] = parse_sales_emails(os.environ.get("SALES_EMAILS", ""))
    app.config["TOKEN_TTL_HOURS"] = int(os.environ.get("TOKEN_TTL_HOURS", str(TOKEN_TTL_HOURS)))
    app.config["PER_IP_PER_MIN_LIMIT"] = int(os.environ.get("PER_IP_PER_MIN_LIMIT", str(PER_IP_PER_MIN_LIMIT)))
    app.config["AI_CALL_TIMEOUT_SEC"] = int(os.environ.get("AI_CALL_TIMEOUT_SEC", str(AI_CALL_TIMEOUT_SEC)))
    app.config["GEMINI_RECOMMENDER_MODEL_ID"] = GEMINI_RECOMMENDER_MODEL_ID

    # Session Cookie Configuration
    app.config["SESSION_COOKIE_SECURE"] = bool(is_render)
    app.config["SESSION_COOKIE_HTTPONLY"] = True
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"

    # pool_pre_ping / pool_recycle: Postgres drops idle connections after ~300s
    if db_url and "postgresql" in db_url:
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
            "pool_pre_ping": True,
            "pool_recycle": 240,
            "pool_size": 5,
            "max_overflow": 10,
            "connect_args": {"connect_timeout": 10, "sslmode": "prefer"}
        }
        logger.info("[BOOT] SQLAlchemy configured with pool_pre_ping=True, pool_recycle=240")

    if not db_url:
        logger.warning("[BOOT] DATABASE_URL not set. Using in-memory sqlite (LOCAL DEV ONLY).")
    if not secret_key:
        logger.warning("[BOOT] SECRET_KEY not set. Using dev fallback (LOCAL DEV ONLY).")

    if db_url:
        parsed_db_url = urlparse(db_url)
        safe_host = parsed_db_url.hostname or ""
        safe_port = f":{parsed_db_url.port}" if parsed_db_url.port else ""
        safe_db = (parsed_db_url.path or "").lstrip("/")
        logger.info("[DB] DATABASE host=%s%s db=%s", safe_host, safe_port, safe_db or "(default)")

    # Init
    db.init_app(app)
    login_manager.init_app(app)
    migrate.init_app(app, db)

    @login_manager.unauthorized_handler
    def unauthorized():
        log_rejection("unauthenticated", "no valid session or token")
        return api_error("unauthenticated", "Authentication required", status=401)

    @app.before_request
    def assign_request_id():
        if not getattr(g, "request_id", None):
            g.request_id = request.headers.get("X-Request-ID", "")[:64] or str(uuid.uuid4())
        g.start_time = pytime.perf_counter()

    @app.before_request
    def log_request_metadata():
        xff = request.headers.get("X-Forwarded-For", "")
        bearer = request.headers.get("Authorization", "").lower().startswith("bearer ")
        logger.info(
            f"[REQ] request_id={g.request_id} {request.method} {request.path} "
            f"host={request.host} scheme={request.scheme} xff={xff} bearer={bearer}"
        )

    # ── Error handlers ────────────────────────────────────────────────

    @app.errorhandler(AccessError)
    def handle_access_error(e):
        log_rejection(e.code, e.message)
        return api_error(e.code, e.message, status=e.status)

    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        log_rejection("validation", f"field={e.field} code={e.code}")
        details = {"field": e.field} if e.field else None
        if e.details is not None:
            details = dict(details or {}, extra=e.details)
        return api_error(e.code, e.message, status=400, details=details)

    @app.errorhandler(RequestEntityTooLarge)
    def handle_request_too_large(e):
        return api_error("payload_too_large", "Payload exceeds limit", status=413, details={"field": "payload"})

    @app.errorhandler(NotFound)
    def handle_not_found(e):
        return api_error("not_found", "Resource not found", status=404)

    @app.errorhandler(MethodNotAllowed)
    def handle_method_not_allowed(e):
        return api_error("method_not_allowed", "Method not allowed", status=405)

    @app.after_request
    def apply_security_headers(response):
        rid = get_request_id()
        response.headers.setdefault("X-Request-ID", rid)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Cross-Origin-Opener-Policy", "same-origin")
        response.headers.setdefault("Cross-Origin-Resource-Policy", "same-site")
        if is_render or request.is_secure:
            response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains; preload")
        if (request.path or "").startswith("/api/"):
            response.headers["Cache-Control"] = "no-store"
            response.headers["Pragma"] = "no-cache"

        duration_ms = (pytime.perf_counter() - g.start_time) * 1000 if hasattr(g, "start_time") else 0
        user_id = current_user.id if current_user.is_authenticated else "anonymous"
        logger.info(
            f"[RESP] request_id={rid} method={request.method} path={request.path} "
            f"status={response.status_code} duration_ms={duration_ms:.2f} user={user_id}"
        )
        return response

    @app.teardown_request
    def teardown_request_handler(exc):
        try:
            db.session.rollback()
        except Exception:
            logger.exception("[DB] teardown rollback failed")
        finally:
            db.session.remove()

    # ==========================
    # ✅ create_all outside Render
    # ==========================
    with app.app_context():
        if is_render:
            logger.info("[DB] Render detected - skipping db.create_all(); run `flask db upgrade` via release/preDeploy")
        elif _env_flag("SKIP_CREATE_ALL"):
            logger.info("[DB] SKIP_CREATE_ALL enabled - skipping db.create_all()")
        else:
            try:
                db.create_all()
                logger.info("[DB] create_all executed")
            except Exception:
                logger.exception("[DB] create_all failed")

    # Gemini key
    gemini_api_key = os.environ.get("GEMINI_API_KEY", "")
    if gemini_api_key:
        try:
            extensions.ai_client = genai3.Client(api_key=gemini_api_key)
            logger.info("[AI] Gemini client initialized")
        except Exception as e:
            extensions.ai_client = None
            logger.error(f"[AI] Failed to init Gemini client: {e}")
    else:
        extensions.ai_client = None
        logger.warning("[AI] GEMINI_API_KEY missing; /api/generate will return ai_error")

    # ------------------
    # ===== ROUTES =====
    # ------------------
    from carfinance.routes.public_routes import bp as public_bp
    from carfinance.routes.auth_routes import bp as auth_bp
    from carfinance.routes.profile_routes import bp as profile_bp
    from carfinance.routes.recommendation_routes import bp as recommendations_bp
    from carfinance.routes.document_routes import bp as documents_bp
    from carfinance.routes.dealership_routes import bp as dealerships_bp
    from carfinance.routes.sales_routes import bp as sales_bp
    app.register_blueprint(public_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(profile_bp)
    app.register_blueprint(recommendations_bp)
    app.register_blueprint(documents_bp)
    app.register_blueprint(dealerships_bp)
    app.register_blueprint(sales_bp)

    @app.cli.command("init-db")
    def init_db_command():
        with app.app_context():
            db.create_all()
        print("Initialized the database tables.")

    @app.cli.command("create-sales-user")
    @click.argument("email")
    @click.argument("password")
    @click.option("--first-name", default="Sales")
    @click.option("--last-name", default="Team")
    def create_sales_user_command(email, password, first_name, last_name):
        """Create an account with the sales role."""
        with app.app_context():
            try:
                user = auth.register_user(email, password, first_name, last_name, role=ROLE_SALES)
            except ValidationError as e:
                raise click.ClickException(e.message)
            print(f"Created sales user {user.email} (id={user.id}).")

    return app


if __name__ == '__main__':
    app = create_app()
    port = int(os.environ.get('PORT', 5001))
    debug = os.environ.get('FLASK_DEBUG', '').lower() in ('1', 'true', 'yes')
    app.run(host='0.0.0.0', port=port, debug=debug)
