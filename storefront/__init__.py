# --- storefront/__init__.py ---
import uuid
from datetime import timedelta

from flask import Flask, jsonify, request

from .channel import init_notifications
from .config import Config
from .errors import StorefrontError
from .extensions import db, jwt, cors, migrate
from .gateway import init_gateway
from .utils.api import err
from .utils.logging import bind_request_context, clear_request_context, configure_logging, get_logger

logger = get_logger(__name__)


def register_error_handlers(app):
    @app.errorhandler(StorefrontError)
    def handle_storefront_error(e):
        db.session.rollback()
        if e.status_code >= 500:
            logger.warning("Request failed", reason=e.reason, message=e.message)
        return err(e.message, e.status_code, e.to_data())

    @jwt.unauthorized_loader
    def missing_token(reason):
        return err("Unauthorized", 401, {"reason": "unauthorized", "detail": reason})

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return err("Invalid token", 401, {"reason": "unauthorized", "detail": reason})

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return err("Token expired", 401, {"reason": "unauthorized"})


def create_app(config_class=Config, **overrides):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_class)
    app.config.setdefault("JWT_ACCESS_TOKEN_EXPIRES", timedelta(days=1))
    app.config.update(overrides)
    config_class.init_app(app)

    configure_logging(app)

    # Init extensions
    db.init_app(app)
    jwt.init_app(app)
    cors.init_app(app, resources={r"/*": {"origins": "*"}}, expose_headers=["X-Order-Id"])
    migrate.init_app(app, db)

    # Payment gateway + notification channel
    init_gateway(app)
    init_notifications(app)

    register_error_handlers(app)

    # Register blueprints
    from .cart import bp as cart_bp; app.register_blueprint(cart_bp)
    from .coupon import bp as coupon_bp; app.register_blueprint(coupon_bp)
    from .order import bp as order_bp; app.register_blueprint(order_bp)
    from .payment import bp as payment_bp; app.register_blueprint(payment_bp)
    from .admin import bp as admin_bp; app.register_blueprint(admin_bp)

    from .cli import register_cli
    register_cli(app)

    @app.before_request
    def _bind_request():
        bind_request_context(request_id=request.headers.get("X-Request-Id") or uuid.uuid4().hex[:12],
                             path=request.path)

    @app.teardown_request
    def _clear_request(exc):
        clear_request_context()

    @app.get("/")
    def health():
        return jsonify(ok=True, msg="API running")

    with app.app_context():
        from . import model  # noqa: F401  register tables
        db.create_all()

    logger.info("App ready", gateway=app.config.get("PAYMENT_GATEWAY"),
                cancellation_policy=app.config.get("ORDER_CANCELLATION_POLICY"))
    return app


__all__ = ["create_app"]
