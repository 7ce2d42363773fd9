"""Payment initiation: cart snapshot → gateway charge → redirect URL.

The ledger row is written before the charge is sent so the return flow can
always match the gateway order number back to the cart.
"""

import html
import re
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable
from urllib.parse import urlencode

from paybridge.common.config import CommonSettings
from paybridge.common.logging import logger, order_number_ctx
from paybridge.common.metrics import payment_failure_total, payment_requests_total
from paybridge.common.money import format_rate, to_minor_units
from paybridge.services.checkout.schemas import Cart, LineItem
from paybridge.services.gateway.client import GatewayClient, GatewayError
from paybridge.services.ledger.service import OrderLedger
from paybridge.services.payment_options.service import METHOD_GROUPS, PaymentOptionsService


SUPPORTED_LANGUAGES = ("fi", "en", "sv", "ru")


def generate_order_number(cart_id: str, now: datetime, prefix: str = "") -> str:
    """`[prefix_]YYYYMMDDHHMMSS_cartId`.

    Two initiations of the same cart within one second produce the same
    number; the second simply overwrites the ledger row.
    """

    stamp = now.strftime("%Y%m%d%H%M%S")
    if prefix:
        return f"{prefix}_{stamp}_{cart_id}"
    return f"{stamp}_{cart_id}"


class PaymentInitiator:
    """Builds charge payloads and asks the gateway for a payment URL."""

    def __init__(
        self,
        client: GatewayClient,
        ledger: OrderLedger,
        payment_options: PaymentOptionsService,
        config: CommonSettings,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.client = client
        self.ledger = ledger
        self.payment_options = payment_options
        self.config = config
        self.clock = clock

    def generate_order_number(self, cart_id: str) -> str:
        return generate_order_number(cart_id, self.clock(), self.config.order_prefix)

    def build_products(self, cart: Cart) -> list[LineItem]:
        """Line items for the gateway, or `[]` when they don't add up.

        Items whose sum differs from the rounded order total are only sent
        when `send_items` is `forced`.
        """

        products: list[LineItem] = []
        total = 0

        for line in cart.products:
            price = to_minor_units(line.price_wt)
            products.append(
                LineItem(
                    id=line.reference,
                    title=line.name,
                    count=line.quantity,
                    pretax_price=to_minor_units(line.price),
                    tax=format_rate(line.rate),
                    price=price,
                    type=1,
                )
            )
            total += price * line.quantity

        shipping = cart.shipping
        if shipping is not None and to_minor_units(shipping.cost) > 0:
            shipping_cost = to_minor_units(shipping.cost)
            products.append(
                LineItem(
                    id=shipping.carrier_reference,
                    title=shipping.carrier_name,
                    count=1,
                    pretax_price=to_minor_units(shipping.cost_tax_exc),
                    tax=format_rate(shipping.tax_rate),
                    price=shipping_cost,
                    type=2,
                )
            )
            total += shipping_cost

        discount = to_minor_units(cart.total_discounts)
        if discount > 0:
            # Unrounded subtotals keep the embedded rate free of rounding drift.
            pretax_raw = sum((d.value_tax_exc for d in cart.discounts), Decimal("0"))
            tax_raw = cart.total_discounts - pretax_raw
            rate = tax_raw / pretax_raw * 100 if pretax_raw > 0 else Decimal("0")
            products.append(
                LineItem(
                    id="1",
                    title="Total discounts",
                    count=1,
                    pretax_price=-to_minor_units(cart.total_discounts_tax_exc),
                    tax=format_rate(rate),
                    price=-discount,
                    type=4,
                )
            )
            total -= discount

        expected = to_minor_units(cart.order_total)
        if total != expected and self.config.send_items != "forced":
            logger.warning(
                "product rows not sent cart_id=%s items_total=%s order_total=%s",
                cart.cart_id,
                total,
                expected,
            )
            return []
        return products

    def build_charge(self, cart: Cart, order_number: str) -> dict[str, Any]:
        return {
            "order_number": order_number,
            "amount": to_minor_units(cart.order_total),
            "currency": cart.currency.upper(),
            "email": html.escape(cart.customer_email) if self.config.send_confirmation else None,
        }

    def build_customer(self, cart: Cart) -> dict[str, str]:
        invoice = cart.invoice_address
        delivery = cart.delivery_address
        email = html.escape(cart.customer_email)
        phone = invoice.phone or invoice.phone_mobile or ""
        return {
            "firstname": html.escape(invoice.firstname),
            "lastname": html.escape(invoice.lastname),
            "email": email,
            "address_street": html.escape(f"{invoice.address1} {invoice.address2}".strip()),
            "address_city": html.escape(invoice.city),
            "address_zip": html.escape(invoice.postcode),
            "address_country": html.escape(invoice.country),
            "shipping_firstname": html.escape(delivery.firstname),
            "shipping_lastname": html.escape(delivery.lastname),
            "shipping_email": email,
            "shipping_address_street": html.escape(f"{delivery.address1} {delivery.address2}".strip()),
            "shipping_address_city": html.escape(delivery.city),
            "shipping_address_zip": html.escape(delivery.postcode),
            "shipping_address_country": html.escape(delivery.country),
            "phone": re.sub(r"[^0-9+ ]", "", phone),
        }

    def return_url(self, cart: Cart) -> str:
        query = urlencode({"id_cart": cart.cart_id, "key": cart.secure_key})
        return f"{self.config.public_base_url.rstrip('/')}/payment_return?{query}"

    def build_payment_method(self, cart: Cart, selected: str | None = None, lang: str | None = None):
        """Payment method block, or `None` when nothing can be offered."""

        if selected:
            methods = [selected]
        else:
            grouped = self.payment_options.get_payment_methods(cart)
            methods = [item.value for group in METHOD_GROUPS for item in grouped.get(group, [])]
        if not methods:
            return None

        lang = (lang or "").lower()
        if lang not in SUPPORTED_LANGUAGES:
            lang = "en"
        url = self.return_url(cart)
        return {
            "type": "e-payment",
            "return_url": url,
            "notify_url": url,
            "lang": lang,
            "selected": methods,
        }

    def create_payment(self, cart: Cart, selected: str | None = None, lang: str | None = None) -> str | None:
        """Create the gateway charge; `None` on any failure (details are logged)."""

        payment_requests_total.labels(service=self.config.service_name).inc()
        order_number = self.generate_order_number(cart.cart_id)
        order_number_ctx.set(order_number)
        try:
            self.ledger.upsert(cart.cart_id, order_number, to_minor_units(cart.order_total), cart.secure_key)

            products: list[LineItem] = []
            if self.config.send_items in ("enabled", "forced"):
                products = self.build_products(cart)

            payment_method = self.build_payment_method(cart, selected, lang)
            if payment_method is None:
                logger.error("no payment methods available cart_id=%s", cart.cart_id)
                payment_failure_total.labels(service=self.config.service_name).inc()
                return None

            response = self.client.create_charge(
                self.build_charge(cart, order_number),
                self.build_customer(cart),
                [p.model_dump() for p in products],
                payment_method,
            )
        except GatewayError as exc:
            logger.error("gateway charge failed order_number=%s error=%s", order_number, exc)
        except Exception:
            logger.exception("creating payment failed order_number=%s", order_number)
        else:
            if response.result == 0 and response.token:
                return self.client.redirect_url(response.token)
            logger.error(
                "gateway rejected charge order_number=%s result=%s errors=%s",
                order_number,
                response.result,
                response.errors,
            )

        payment_failure_total.labels(service=self.config.service_name).inc()
        return None
