# backend/refpoints/__init__.py
import atexit
import logging
import time

from flask import Flask, g, request

from .config import Config
from .extensions import BROADCAST_QUEUE_KEY, NOTIFIER_KEY, db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.customers import customers_bp
    from .routes.campaigns import campaigns_bp
    from .routes.products import products_bp
    from .routes.coupons import coupons_bp, referrals_bp
    from .routes.sales import sales_bp
    from .routes.bills import bills_bp
    from .routes.broadcasts import broadcasts_bp
    from .routes.dashboard import dashboard_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(campaigns_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(coupons_bp)
    app.register_blueprint(referrals_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(bills_bp)
    app.register_blueprint(broadcasts_bp)
    app.register_blueprint(dashboard_bp)

    @app.before_request
    def start_timer():
        g.request_started = time.perf_counter()

    @app.after_request
    def log_request(response):
        if request.path.startswith("/api/"):
            started = g.get("request_started")
            elapsed_ms = (time.perf_counter() - started) * 1000 if started is not None else 0.0
            app.logger.info(
                "%s %s -> %s (%.1f ms)", request.method, request.path, response.status_code, elapsed_ms
            )
        return response

    init_messaging(app)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app


def init_messaging(app: Flask) -> None:
    """
    Build the notifier session and broadcast queue for this app.

    Both live for the lifetime of the process and are shut down at exit.
    Tests may pre-seed either object through test_config's
    NOTIFIER_INSTANCE / BROADCAST_SLEEP keys.
    """
    from .services.broadcast_service import BroadcastQueue
    from .services.notifier import build_notifier

    notifier = app.config.get("NOTIFIER_INSTANCE") or build_notifier(app.config)
    notifier.connect()

    broadcast_queue = BroadcastQueue(
        notifier,
        concurrency=app.config["BROADCAST_CONCURRENCY"],
        delay_seconds=app.config["BROADCAST_DELAY_SECONDS"],
        sleep=app.config.get("BROADCAST_SLEEP") or time.sleep,
    ).start()

    app.extensions[NOTIFIER_KEY] = notifier
    app.extensions[BROADCAST_QUEUE_KEY] = broadcast_queue

    def shutdown():
        broadcast_queue.stop(wait=False)
        notifier.disconnect()

    atexit.register(shutdown)
