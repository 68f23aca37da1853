"""Payment gateway registry.

``init_gateway(app)`` builds the adapter named by ``PAYMENT_GATEWAY`` and
stores it on the app; ``get_gateway()`` returns it for the current app. The
fake gateway trusts a fixed webhook signature, so it is only built for a
``TESTING`` app.
"""

from flask import current_app

from storefront.gateway.fake_adapter import FakeGateway
from storefront.gateway.port import PaymentGateway

EXTENSION_KEY = "payment_gateway"


def build_gateway(config) -> PaymentGateway:
    name = (config.get("PAYMENT_GATEWAY") or "stripe").lower()
    if name == "fake":
        if not config.get("TESTING"):
            raise ValueError("the fake payment gateway is only available when TESTING is set")
        return FakeGateway()
    if name == "stripe":
        from storefront.gateway.stripe_adapter import StripeGateway

        app_url = (config.get("APP_URL") or "").rstrip("/")
        return StripeGateway(
            api_key=config.get("STRIPE_SECRET_KEY"),
            webhook_secret=config.get("STRIPE_WEBHOOK_SECRET"),
            success_url=f"{app_url}/myorders?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{app_url}/checkout",
            timeout=float(config.get("PAYMENT_TIMEOUT_SECONDS") or 10),
        )
    raise ValueError(f"Unknown payment gateway: {name}")


def init_gateway(app) -> None:
    app.extensions[EXTENSION_KEY] = build_gateway(app.config)


def get_gateway() -> PaymentGateway:
    return current_app.extensions[EXTENSION_KEY]
