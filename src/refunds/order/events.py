"""Domain events for the Order aggregate."""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text

from refunds.domain import refunds


@refunds.event(part_of="Order")
class OrderPlaced:
    """A new order was placed with its lines and shipping cost."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    details = Text(required=True)  # JSON: list of order detail dicts
    shipping_cost_tax_incl = Float()
    discount_total = Float()
    currency = String(default="USD")
    placed_at = DateTime(required=True)


@refunds.event(part_of="Order")
class PartialRefundIssued:
    """Part of an order was refunded to the customer."""

    __version__ = 1

    order_id = Identifier(required=True)
    refunded_lines = Text(required=True)  # JSON: {order_detail_id: {"quantity", "amount"}}
    shipping_refund = Float(default=0.0)
    total_refund = Float(required=True)
    restocked = Boolean(default=False)
    credit_slip_number = Integer()
    voucher_code = String(max_length=50)
    voucher_amount = Float()
    issued_at = DateTime(required=True)
