import os


def _env_bool(name, default=False):
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}


class Config:
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JSON_SORT_KEYS = False
    ENV = os.getenv("FLASK_ENV", "development")
    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", "dev-secret-change-me")

    # Notifications: cancellation / order notices go to the customer and here
    ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
    NOTIFY_WORKERS = int(os.getenv("NOTIFY_WORKERS", "2"))
    EMAIL_BACKEND = os.getenv("EMAIL_BACKEND", "smtp")
    SMTP_HOST = os.getenv("SMTP_HOST", "localhost")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_USE_TLS = _env_bool("SMTP_USE_TLS", True)
    MAIL_FROM = os.getenv("MAIL_FROM", "no-reply@localhost")

    # Payments: "stripe"; the fake gateway is for TestConfig only
    PAYMENT_GATEWAY = os.getenv("PAYMENT_GATEWAY", "stripe")
    PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "inr")
    PAYMENT_TIMEOUT_SECONDS = float(os.getenv("PAYMENT_TIMEOUT_SECONDS", "10"))
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
    APP_URL = os.getenv("APP_URL", "http://localhost:3000")

    # "pre_shipment" (pending, processing) or "pre_delivery" (adds shipped)
    ORDER_CANCELLATION_POLICY = os.getenv("ORDER_CANCELLATION_POLICY", "pre_shipment")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_JSON = _env_bool("LOG_JSON", ENV == "production")

    @staticmethod
    def init_app(app):
        if app.config.get("SQLALCHEMY_DATABASE_URI"):
            return
        if not os.getenv("DATABASE_URL"):
            os.makedirs(app.instance_path, exist_ok=True)
            app.config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{os.path.join(app.instance_path, 'app.db')}"
        else:
            app.config["SQLALCHEMY_DATABASE_URI"] = os.getenv("DATABASE_URL")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    JWT_SECRET_KEY = "test-secret-key-with-enough-length-for-hs256"
    ADMIN_EMAIL = "admin@storefront.test"
    PAYMENT_GATEWAY = "fake"
    EMAIL_BACKEND = "fake"
    NOTIFY_WORKERS = 1
    ORDER_CANCELLATION_POLICY = "pre_shipment"
    LOG_LEVEL = "WARNING"
    LOG_JSON = False
