import os
import subprocess
from pathlib import Path

import click
from flask import Flask, jsonify, request, g
from sqlalchemy import func, text
from werkzeug.exceptions import HTTPException

from kyve.errors import EscrowError
from kyve.extensions import db, migrate, cors
from kyve.models import User
from kyve.segments.segment_escrows import escrows_bp
from kyve.segments.segment_external_api import external_api_bp
from kyve.segments.segment_users import users_bp
from kyve.utils.identity import current_principal
from kyve.utils.jwt_utils import issue_session_token
from kyve.utils.observability import init_sentry, install_request_observers, tag_principal
from kyve.utils.rate_limit import (
    build_rate_limit_subject,
    check_limit,
    limiter_stats,
    rate_limit_enabled,
)


def _resolve_alembic_head() -> str:
    from alembic.config import Config
    from alembic.script import ScriptDirectory

    migrations_dir = Path(__file__).resolve().parents[1] / "migrations"
    cfg = Config(str(migrations_dir / "alembic.ini"))
    cfg.set_main_option("script_location", str(migrations_dir))
    try:
        heads = ScriptDirectory.from_config(cfg).get_heads()
    except Exception:
        return "unknown"
    return heads[0] if heads else "unknown"


def _resolve_git_sha() -> str:
    for env_key in ("GIT_SHA", "SOURCE_VERSION"):
        val = (os.getenv(env_key) or "").strip()
        if val:
            return val
    try:
        repo_root = Path(__file__).resolve().parents[2]
        out = subprocess.check_output(
            ["git", "rev-parse", "HEAD"],
            cwd=str(repo_root),
            stderr=subprocess.DEVNULL,
        )
        return out.decode().strip()
    except (OSError, subprocess.CalledProcessError):
        return "unknown"


def _env_int(name: str, default: int, *, minimum: int = 1, maximum: int = 100000) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        value = int(default)
    else:
        try:
            value = int(raw)
        except ValueError:
            value = int(default)
    if value < minimum:
        value = minimum
    if value > maximum:
        value = maximum
    return value


def _error_payload(code: str, message: str, status: int, extra: dict | None = None) -> dict:
    payload = {
        "ok": False,
        "error": code,
        "message": message,
        "status": int(status),
    }
    payload.update(extra or {})
    rid = (getattr(g, "request_id", "") or "").strip()
    if rid:
        payload["trace_id"] = rid
    return payload


def create_app():
    app = Flask(__name__)
    init_sentry(app)

    env = (os.getenv("KYVE_ENV", "dev") or "dev").strip().lower()

    # Production safety checks
    if env in ("prod", "production"):
        secret = (os.getenv("SECRET_KEY") or "").strip()
        if not secret or len(secret) < 16:
            raise RuntimeError("SECRET_KEY must be set and at least 16 chars in production")

    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY", "dev-secret")
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["APP_URL"] = (
        os.getenv("APP_URL") or os.getenv("PUBLIC_BASE_URL") or "http://localhost:3000"
    ).strip().rstrip("/")

    instance_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "instance"))

    database_url = os.getenv("SQLALCHEMY_DATABASE_URI") or os.getenv("DATABASE_URL")
    if not database_url:
        if env in ("prod", "production"):
            raise RuntimeError("DATABASE_URL (or SQLALCHEMY_DATABASE_URI) must be set in production")
        os.makedirs(instance_dir, exist_ok=True)
        canonical_path = os.path.join(instance_dir, "kyve.db")
        database_url = f"sqlite:///{canonical_path.replace(os.sep, '/')}"
    if database_url.startswith("postgres://"):
        database_url = "postgresql://" + database_url[len("postgres://"):]
    app.config["SQLALCHEMY_DATABASE_URI"] = database_url
    engine_options = {
        "pool_pre_ping": True,
        "pool_recycle": _env_int("DB_POOL_RECYCLE_SECONDS", 1800, minimum=60, maximum=86400),
    }
    if not database_url.startswith("sqlite://"):
        engine_options.update(
            {
                "pool_size": _env_int("DB_POOL_SIZE", 10, minimum=1, maximum=200),
                "max_overflow": _env_int("DB_MAX_OVERFLOW", 20, minimum=0, maximum=500),
                "pool_timeout": _env_int("DB_POOL_TIMEOUT_SECONDS", 30, minimum=1, maximum=300),
            }
        )
        app.logger.info(
            "db_pooling_enabled pool_size=%s max_overflow=%s pool_timeout=%s pool_recycle=%s",
            engine_options["pool_size"],
            engine_options["max_overflow"],
            engine_options["pool_timeout"],
            engine_options["pool_recycle"],
        )
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options

    cors_origins = (os.getenv("CORS_ORIGINS") or "").strip()
    if env in ("prod", "production"):
        origins = [o.strip() for o in cors_origins.split(",") if o.strip()]
    else:
        origins = ["*"] if not cors_origins else [o.strip() for o in cors_origins.split(",") if o.strip()]
    cors.init_app(app, resources={r"/api/*": {"origins": origins}})

    db.init_app(app)
    migrate.init_app(app, db)
    install_request_observers(app)

    @app.errorhandler(EscrowError)
    def _api_escrow_error(error: EscrowError):
        payload = _error_payload(error.code, error.message, error.status_code, error.extra)
        if error.status_code >= 500:
            app.logger.error("escrow_error path=%s err=%s", request.path, error.message)
        return jsonify(payload), int(error.status_code)

    @app.errorhandler(HTTPException)
    def _api_http_exception(error: HTTPException):
        if not request.path.startswith("/api/"):
            return error
        status = int(error.code or 500)
        return jsonify(_error_payload(error.name, error.description or error.name, status)), status

    @app.errorhandler(Exception)
    def _api_unhandled_exception(error: Exception):
        app.logger.exception("unhandled_exception path=%s", request.path)
        return jsonify(_error_payload("InternalServerError", "Internal server error", 500)), 500

    app.register_blueprint(escrows_bp)
    app.register_blueprint(external_api_bp)
    app.register_blueprint(users_bp)

    @app.get("/api/health")
    def health():
        db_state = "ok"
        db_error = None
        try:
            with db.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            db_state = "fail"
            msg = str(e)
            if msg:
                db_error = (msg[:300] + "...") if len(msg) > 300 else msg
        payload = {
            "ok": True,
            "service": "kyve-backend",
            "env": env,
            "db": db_state,
            "git_sha": _resolve_git_sha(),
            "alembic_head": _resolve_alembic_head(),
            "rate_limit": limiter_stats(),
        }
        if db_error:
            payload["db_error"] = db_error
        return jsonify(payload)

    @app.get("/")
    def root():
        return jsonify({
            "ok": True,
            "service": "kyve-backend",
            "env": env,
        })

    @app.before_request
    def _reset_db_session():
        db.session.rollback()

    @app.before_request
    def _capture_auth_context():
        g.auth_user_id = None
        path = request.path or ""
        if not path.startswith("/api/") or path == "/api/health":
            return None
        user = current_principal()
        tag_principal(user)
        return None

    def _rate_limited_response(retry_after_seconds: int):
        retry_after = int(max(1, retry_after_seconds or 1))
        resp = jsonify(
            _error_payload(
                "RATE_LIMITED",
                "Too many requests. Please retry later.",
                429,
                {"retry_after_seconds": retry_after},
            )
        )
        resp.status_code = 429
        resp.headers["Retry-After"] = str(retry_after)
        return resp

    @app.before_request
    def _global_rate_limit_guard():
        if bool(app.config.get("TESTING")):
            allow_in_tests = (os.getenv("RATE_LIMIT_IN_TESTS") or "").strip().lower() in ("1", "true", "yes", "on")
            if not allow_in_tests:
                return None
        if not rate_limit_enabled(True):
            return None
        method = (request.method or "GET").strip().upper()
        if method == "OPTIONS":
            return None
        path = (request.path or "").strip()
        if not path.startswith("/api/") or path == "/api/health":
            return None

        subject = build_rate_limit_subject(
            user_id=getattr(g, "auth_user_id", None),
            request_obj=request,
        )
        if method == "GET":
            limit = _env_int("RATE_LIMIT_READ_PER_MINUTE", 120)
            tier = "browse"
        else:
            limit = _env_int("RATE_LIMIT_WRITE_PER_MINUTE", 60)
            tier = "write"
        ok, retry_after = check_limit(
            f"tier:{tier}:{method}:{path}:{subject}",
            limit=limit,
            window_seconds=60,
        )
        if not ok:
            return _rate_limited_response(retry_after)
        return None

    @app.teardown_request
    def _cleanup_db_session(exc):
        try:
            if exc is not None:
                db.session.rollback()
        finally:
            db.session.remove()

    @app.cli.command("create-user")
    @click.option("--email", "email", required=True, help="Email of the user to provision")
    @click.option("--name", "name", default="", help="Display name")
    def create_user(email: str, name: str):
        """Provision a principal and print its API key and a session token."""
        email = (email or "").strip().lower()
        if not email:
            raise click.ClickException("--email is required.")
        u = User.query.filter(func.lower(User.email) == email).first()
        if u is None:
            u = User(name=(name or email.split("@")[0]).strip(), email=email)
            db.session.add(u)
            db.session.commit()
            click.echo(f"user_created id={u.id} email={u.email}")
        else:
            click.echo(f"user_exists id={u.id} email={u.email}")
        click.echo(f"api_key={u.api_key}")
        click.echo(f"session_token={issue_session_token(int(u.id))}")

    @app.cli.command("rotate-api-key")
    @click.option("--email", "email", required=True, help="Email of the user whose key is rotated")
    def rotate_api_key(email: str):
        u = User.query.filter(func.lower(User.email) == (email or "").strip().lower()).first()
        if u is None:
            raise click.ClickException("User not found.")
        key = u.rotate_api_key()
        db.session.commit()
        click.echo(f"api_key_rotated id={u.id} api_key={key}")

    return app
