# Overview: Outbound notifications for order events; transports and fire-and-forget dispatch.

"""
Notifications

Events:
- order.confirmed          -> the customer (or guest contact) of a new order
- order.new_admin_alert    -> NOTIFY_ADMIN_CONTACT and the fulfilling shop
- order.delivery_assigned  -> the assigned delivery person

The active transport lives in app.extensions["notifier"] (built in
create_app). dispatch() is the only entry point services use; it runs after
the order transaction has committed and never lets a transport failure reach
the caller.
"""

from __future__ import annotations

import httpx
from flask import current_app

from ..models import Order, User
from ..validation import cents_to_amount

ORDER_CONFIRMED = "order.confirmed"
ORDER_NEW_ADMIN_ALERT = "order.new_admin_alert"
ORDER_DELIVERY_ASSIGNED = "order.delivery_assigned"


class Notifier:
    """Transport interface."""

    def notify(self, event: str, payload: dict) -> None:
        raise NotImplementedError


class LogNotifier(Notifier):
    """Default transport: writes the event to the application log."""

    def notify(self, event: str, payload: dict) -> None:
        current_app.logger.info("notification %s -> %s: %s", event, payload.get("recipient"), payload)


class WebhookNotifier(Notifier):
    """POSTs {"event", "payload"} as JSON to a configured URL."""

    def __init__(self, url: str, timeout: float = 5.0, client: httpx.Client | None = None):
        self.url = url
        self.timeout = timeout
        self._client = client

    def notify(self, event: str, payload: dict) -> None:
        body = {"event": event, "payload": payload}
        if self._client is not None:
            response = self._client.post(self.url, json=body, timeout=self.timeout)
        else:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(self.url, json=body)
        response.raise_for_status()


def build_notifier(config) -> Notifier:
    url = config.get("NOTIFY_WEBHOOK_URL")
    if url:
        return WebhookNotifier(url, timeout=config.get("NOTIFY_WEBHOOK_TIMEOUT", 5.0))
    return LogNotifier()


def dispatch(event: str, payload: dict) -> bool:
    """
    Send one event through the app's notifier.

    Returns False when the transport failed; the failure is logged and
    swallowed so it can never change the outcome of the command that
    triggered it.
    """
    notifier = current_app.extensions.get("notifier")
    if notifier is None:
        return False
    try:
        notifier.notify(event, payload)
    except Exception:
        current_app.logger.exception("notification %s failed", event)
        return False
    current_app.logger.info("notification %s dispatched", event)
    return True


# =============================================================================
# PAYLOADS
# =============================================================================

def _order_summary(order: Order) -> dict:
    return {
        "order_id": order.id,
        "status": order.status,
        "delivery_type": order.delivery_type,
        "total": cents_to_amount(order.total_cents),
        "subtotal": cents_to_amount(order.subtotal_cents),
        "gst_amount": cents_to_amount(order.gst_amount_cents),
        "delivery_fee": cents_to_amount(order.delivery_fee_cents),
        "handling_fee": cents_to_amount(order.handling_fee_cents),
        "delivery_address": order.address,
        "items": [
            {
                "product_name": item.product.name if item.product else None,
                "quantity": item.quantity,
                "price": cents_to_amount(item.unit_price_cents),
            }
            for item in order.items
        ],
    }


def order_confirmation(order: Order, customer: User | None, guest_contact: dict | None = None) -> dict:
    payload = _order_summary(order)
    if customer is not None:
        payload["recipient"] = {"name": customer.name, "email": customer.email, "phone": customer.phone}
    else:
        contact = guest_contact or {}
        payload["recipient"] = {
            "name": contact.get("name"),
            "email": contact.get("email"),
            "phone": contact.get("phone"),
        }
    return payload


def admin_alert(order: Order) -> dict:
    return {
        "recipient": current_app.config.get("NOTIFY_ADMIN_CONTACT"),
        "order_id": order.id,
        "customer_id": order.user_id,
        "shop_id": order.shop_id,
        "total": cents_to_amount(order.total_cents),
    }


def delivery_assignment(order: Order, courier: User) -> dict:
    return {
        "recipient": {"name": courier.name, "email": courier.email, "phone": courier.phone},
        "order_id": order.id,
        "delivery_address": order.address,
        "total": cents_to_amount(order.total_cents),
        "payment_status": order.payment_status,
    }
