"""Order placement: command and handler."""

import json

from protean import handle
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from refunds.domain import logger, refunds
from refunds.order.order import Order


@refunds.command(part_of="Order")
class PlaceOrder:
    """Place an order for a list of products."""

    customer_id = Identifier(required=True)
    products = Text(required=True)  # JSON: list of {name, quantity, unit_price_tax_incl, unit_price_tax_excl}
    shipping_cost_tax_incl = Float(default=0.0)
    shipping_cost_tax_excl = Float()
    discount_total = Float(default=0.0)
    currency = String(max_length=3, default="USD")


@refunds.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        products = json.loads(command.products) if isinstance(command.products, str) else command.products

        order = Order.place(
            customer_id=command.customer_id,
            details_data=products,
            shipping_cost_tax_incl=command.shipping_cost_tax_incl or 0.0,
            shipping_cost_tax_excl=command.shipping_cost_tax_excl,
            discount_total=command.discount_total or 0.0,
            currency=command.currency or "USD",
        )
        current_domain.repository_for(Order).add(order)
        logger.info("Order placed", order_id=str(order.id), lines=len(products))
        return str(order.id)
