"""Merchant payment methods and checkout payment options."""

from pydantic import BaseModel, Field

from paybridge.common.config import CommonSettings
from paybridge.common.logging import logger
from paybridge.common.money import to_minor_units
from paybridge.services.checkout.schemas import Cart
from paybridge.services.gateway.client import GatewayClient, GatewayError
from paybridge.services.gateway.schemas import MerchantPaymentMethod


METHOD_GROUPS = ("creditcards", "wallets", "banks", "creditinvoices")
BUSINESS_INVOICE = "laskuyritykselle"
GATEWAY_OPTION_TITLE = "Visma Pay - internet banking, credit cards, credit invoices and wallet services"


class PaymentMethodItem(BaseModel):
    name: str
    value: str


class PaymentOption(BaseModel):
    """One option shown at checkout; `selected` pins a single gateway method."""

    title: str
    selected: str | None = None
    methods: dict[str, list[PaymentMethodItem]] = Field(default_factory=dict)


class PaymentOptionsService:
    """Filters the merchant's methods by the enabled categories."""

    def __init__(self, client: GatewayClient, config: CommonSettings) -> None:
        self.client = client
        self.config = config

    def _group_enabled(self, method: MerchantPaymentMethod, total: int) -> bool:
        if method.group == "creditcards":
            return self.config.select_creditcards
        if method.group == "wallets":
            return self.config.select_wallets
        if method.group == "banks":
            return self.config.select_banks
        if method.group == "creditinvoices":
            if method.selected_value == BUSINESS_INVOICE:
                return self.config.select_laskuyritykselle
            if not self.config.select_creditinvoices:
                return False
            low = method.min_amount if method.min_amount is not None else 0
            high = method.max_amount if method.max_amount is not None else total
            return low <= total <= high
        return False

    def _fetch_merchant_methods(self, currency: str) -> list[MerchantPaymentMethod]:
        try:
            response = self.client.get_merchant_payment_methods(currency)
        except GatewayError as exc:
            logger.error("merchant payment methods unavailable, check gateway credentials: %s", exc)
            return []
        except Exception:
            logger.exception("fetching merchant payment methods failed")
            return []
        if response.result != 0:
            logger.error("merchant payment methods rejected result=%s", response.result)
            return []
        return response.payment_methods

    def get_payment_methods(self, cart: Cart) -> dict[str, list[PaymentMethodItem]]:
        """Enabled gateway methods for the cart, grouped by category."""

        methods: dict[str, list[PaymentMethodItem]] = {group: [] for group in METHOD_GROUPS}
        total = to_minor_units(cart.order_total)
        for method in self._fetch_merchant_methods(cart.currency):
            if method.group in methods and self._group_enabled(method, total):
                methods[method.group].append(PaymentMethodItem(name=method.name, value=method.selected_value))
        return methods

    def get_payment_options(self, cart: Cart) -> list[PaymentOption]:
        """Checkout options according to the configured display mode."""

        methods = self.get_payment_methods(cart)
        if not any(methods.values()):
            return []
        mode = self.config.display_mode
        if mode == "separate":
            return [
                PaymentOption(title=item.name, selected=item.value)
                for group in METHOD_GROUPS
                for item in methods[group]
            ]
        if mode == "embed":
            return [PaymentOption(title=GATEWAY_OPTION_TITLE, methods=methods)]
        return [PaymentOption(title=GATEWAY_OPTION_TITLE)]
