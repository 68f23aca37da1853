# storefront/services/__init__.py
"""Service factories bound to the current app's configuration and adapters."""
from flask import current_app

from ..channel import get_dispatcher
from ..gateway import get_gateway
from .cancellation_service import CancellationReconciler
from .order_service import OrderAssembler
from .order_state import OrderStateMachine, policy_named


def state_machine() -> OrderStateMachine:
    return OrderStateMachine(policy_named(current_app.config.get("ORDER_CANCELLATION_POLICY")))


def order_assembler() -> OrderAssembler:
    return OrderAssembler(dispatcher=get_dispatcher(), admin_email=current_app.config.get("ADMIN_EMAIL"))


def cancellation_reconciler() -> CancellationReconciler:
    return CancellationReconciler(
        gateway=get_gateway(),
        dispatcher=get_dispatcher(),
        state_machine=state_machine(),
        admin_email=current_app.config.get("ADMIN_EMAIL"),
    )


def payment_currency() -> str:
    return (current_app.config.get("PAYMENT_CURRENCY") or "inr").lower()
