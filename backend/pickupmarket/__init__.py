import os
from pathlib import Path

import click
from flask import Flask, g, jsonify, request
from sqlalchemy import text
from werkzeug.exceptions import HTTPException

from pickupmarket.config import _env_int
from pickupmarket.errors import DomainError
from pickupmarket.extensions import cors, db, migrate
from pickupmarket.segments.segment_market_boxes import market_boxes_bp
from pickupmarket.segments.segment_markets import markets_bp
from pickupmarket.segments.segment_notifications import notifications_bp
from pickupmarket.segments.segment_payment_webhooks import webhooks_bp
from pickupmarket.segments.segment_orders import orders_bp
from pickupmarket.segments.segment_pricing import pricing_bp
from pickupmarket.segments.segment_vendor_fees import vendor_fees_bp
from pickupmarket.utils.jwt_utils import actor_from_header
from pickupmarket.utils.observability import init_sentry, install_request_observers


def _resolve_alembic_head() -> str:
    try:
        from alembic.config import Config
        from alembic.script import ScriptDirectory

        migrations_dir = Path(__file__).resolve().parents[1] / "migrations"
        cfg = Config(str(migrations_dir / "alembic.ini"))
        cfg.set_main_option("script_location", str(migrations_dir))
        heads = ScriptDirectory.from_config(cfg).get_heads()
        return heads[0] if heads else "unknown"
    except Exception:
        return "unknown"


def _error_payload(code, message: str, status: int) -> dict:
    payload = {"ok": False, "error": code, "message": message, "status": int(status)}
    rid = (getattr(g, "request_id", "") or "").strip()
    if rid:
        payload["trace_id"] = rid
    return payload


def create_app():
    app = Flask(__name__)
    init_sentry(app)

    env = (os.getenv("PICKUPMARKET_ENV", "dev") or "dev").strip().lower()

    # Production safety checks
    if env in ("prod", "production"):
        secret = (os.getenv("SECRET_KEY") or "").strip()
        if not secret or len(secret) < 16:
            raise RuntimeError("SECRET_KEY must be set and at least 16 chars in production")
        if not (os.getenv("DATABASE_URL") or "").strip() and not (os.getenv("SQLALCHEMY_DATABASE_URI") or "").strip():
            raise RuntimeError("DATABASE_URL (or SQLALCHEMY_DATABASE_URI) must be set in production")

    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY", "dev-secret")
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

    database_url = os.getenv("SQLALCHEMY_DATABASE_URI") or os.getenv("DATABASE_URL")
    if not database_url:
        instance_dir = Path(__file__).resolve().parents[1] / "instance"
        instance_dir.mkdir(parents=True, exist_ok=True)
        database_url = f"sqlite:///{(instance_dir / 'pickupmarket.db').as_posix()}"
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)
    app.config["SQLALCHEMY_DATABASE_URI"] = database_url
    if not database_url.startswith("sqlite://"):
        engine_options = {
            "pool_pre_ping": True,
            "pool_reset_on_return": "rollback",
            "pool_recycle": _env_int("DB_POOL_RECYCLE_SECONDS", 1800, minimum=60, maximum=86400),
            "pool_size": _env_int("DB_POOL_SIZE", 10, minimum=1, maximum=200),
            "max_overflow": _env_int("DB_MAX_OVERFLOW", 20, minimum=0, maximum=500),
            "pool_timeout": _env_int("DB_POOL_TIMEOUT_SECONDS", 30, minimum=1, maximum=300),
        }
        app.logger.info(
            "db_pooling_enabled pool_size=%s max_overflow=%s pool_timeout=%s pool_recycle=%s",
            engine_options["pool_size"],
            engine_options["max_overflow"],
            engine_options["pool_timeout"],
            engine_options["pool_recycle"],
        )
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options

    cors_origins = [o.strip() for o in (os.getenv("CORS_ORIGINS") or "").split(",") if o.strip()]
    if not cors_origins and env not in ("prod", "production"):
        cors_origins = ["*"]
    cors.init_app(app, resources={r"/api/*": {"origins": cors_origins}})

    db.init_app(app)
    migrate.init_app(app, db)
    install_request_observers(app)

    @app.before_request
    def _capture_actor():
        g.actor = actor_from_header(request.headers.get("Authorization", ""))
        if g.actor is None:
            return
        try:
            import sentry_sdk

            sentry_sdk.set_user({"id": str(g.actor.user_id)})
            sentry_sdk.set_tag("auth_role", g.actor.role)
        except Exception:
            pass

    @app.errorhandler(DomainError)
    def _domain_error(error: DomainError):
        if error.http_status >= 500:
            app.logger.warning("domain_error code=%s path=%s msg=%s", error.code, request.path, error.message)
        else:
            app.logger.info("domain_error code=%s path=%s", error.code, request.path)
        db.session.rollback()
        payload = _error_payload(error.to_dict(), error.message, error.http_status)
        return jsonify(payload), error.http_status

    @app.errorhandler(HTTPException)
    def _api_http_exception(error: HTTPException):
        # Keep API failures JSON-only for predictable client handling.
        if not request.path.startswith("/api/"):
            return error
        code = int(error.code or 500)
        return jsonify(_error_payload(error.name, error.description or error.name, code)), code

    @app.errorhandler(Exception)
    def _api_unhandled_exception(error: Exception):
        app.logger.exception("unhandled_exception path=%s", request.path)
        db.session.rollback()
        return jsonify(_error_payload("InternalServerError", "Internal server error", 500)), 500

    app.register_blueprint(pricing_bp)
    app.register_blueprint(markets_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(market_boxes_bp)
    app.register_blueprint(vendor_fees_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(webhooks_bp)

    @app.get("/api/health")
    def health():
        db_state = "ok"
        db_error = None
        try:
            with db.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            db_state = "fail"
            db_error = str(e)[:300]
        payload = {
            "ok": True,
            "service": "pickupmarket-backend",
            "env": env,
            "db": db_state,
            "git_sha": (os.getenv("GIT_SHA") or "unknown").strip(),
            "alembic_head": _resolve_alembic_head(),
        }
        if db_error:
            payload["db_error"] = db_error
        return jsonify(payload)

    @app.teardown_request
    def _cleanup_db_session(exc):
        try:
            if exc is not None:
                db.session.rollback()
        finally:
            db.session.remove()

    @app.cli.command("create-db")
    def create_db():
        """Create tables directly (dev/test only; use flask db upgrade elsewhere)."""
        if env in ("prod", "production"):
            raise click.ClickException("create-db is disabled in production; run flask db upgrade.")
        db.create_all()
        click.echo("create_db_ok")

    @app.cli.command("fee-balances")
    @click.option("--min-cents", "min_cents", default=1, show_default=True, help="Only vendors owing at least this much")
    def fee_balances(min_cents: int):
        from pickupmarket.services.fee_ledger import get_vendor_fee_balance, outstanding_by_vendor

        for vendor_id, total in sorted(outstanding_by_vendor().items()):
            if total < min_cents:
                continue
            balance = get_vendor_fee_balance(vendor_id)
            click.echo(
                f"vendor={vendor_id} balance_cents={balance.balance_cents} "
                f"requires_payment={balance.requires_payment} reason={balance.reason or '-'}"
            )

    return app
