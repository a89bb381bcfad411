"""Partial refund requests built from rows naming products.

Refund rows name products the way a person reads them off an order
("T-Shirt", quantity 1, amount 10.00). Building a request resolves each name
against an order snapshot to the order detail it refers to, and keeps the
special ``shipping_refund`` row apart as the shipping amount.

Building does not raise on unknown products: it returns ``ProductNotFound``
and the caller decides what to do with it.
"""

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal

import structlog
from protean.utils.globals import current_domain

from refunds.order.order import VoucherRefundType, parse_amount, parse_quantity
from refunds.order.refund import IssuePartialRefund
from refunds.order.viewing import OrderSnapshot, fetch_order_snapshot

logger = structlog.get_logger(__name__)

SHIPPING_REFUND_ROW = "shipping_refund"


@dataclass(frozen=True)
class RefundLineRequest:
    """One requested refund row.

    ``quantity`` and ``amount`` are None when the row held something that is
    not a number; the domain rejects those when the refund is issued.
    """

    product_name: str
    quantity: int | None = None
    amount: Decimal | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, str]) -> "RefundLineRequest":
        """Read a ``{product_name, quantity, amount}`` table row."""
        return cls(
            product_name=row["product_name"],
            quantity=parse_quantity(row.get("quantity")),
            amount=parse_amount(row.get("amount")),
        )

    @property
    def is_shipping(self) -> bool:
        return self.product_name == SHIPPING_REFUND_ROW


@dataclass(frozen=True)
class OrderLineRefund:
    order_detail_id: str
    quantity: int | None
    amount: Decimal | None


@dataclass(frozen=True)
class PartialRefundRequest:
    order_id: str
    line_refunds: Mapping[str, OrderLineRefund] = field(default_factory=dict)
    shipping_refund_amount: Decimal | None = Decimal("0")
    restock: bool = False
    generate_credit_slip: bool = True
    generate_voucher: bool = False
    voucher_refund_type: VoucherRefundType = VoucherRefundType.PRODUCT_PRICES_EXCLUDING_VOUCHER_REFUND
    voucher_refund_amount: Decimal | None = None


@dataclass(frozen=True)
class ProductNotFound:
    """A refund row named a product the order does not have."""

    product_name: str

    def __str__(self):
        return f"Product {self.product_name} not found in order products"

    def as_error(self) -> LookupError:
        return LookupError(str(self))


def build_partial_refund(
    snapshot: OrderSnapshot,
    rows: Iterable[RefundLineRequest],
    restock: bool = False,
    generate_credit_slip: bool = True,
    generate_voucher: bool = False,
    voucher_refund_type: VoucherRefundType = VoucherRefundType.PRODUCT_PRICES_EXCLUDING_VOUCHER_REFUND,
    voucher_refund_amount: Decimal | None = None,
) -> PartialRefundRequest | ProductNotFound:
    """Resolve refund rows against ``snapshot``.

    Rows are processed in order. A ``shipping_refund`` row sets the shipping
    amount (the last one wins). Any other row is matched to the first product
    with exactly the same name; a later row for the same product replaces the
    earlier one. The first row naming an unknown product stops the build.
    """
    shipping_refund_amount = Decimal("0")
    line_refunds: dict[str, OrderLineRefund] = {}

    for row in rows:
        if row.is_shipping:
            shipping_refund_amount = row.amount
            continue

        product = next((p for p in snapshot.products if p.name == row.product_name), None)
        if product is None:
            return ProductNotFound(row.product_name)

        line_refunds[product.order_detail_id] = OrderLineRefund(
            order_detail_id=product.order_detail_id,
            quantity=row.quantity,
            amount=row.amount,
        )

    return PartialRefundRequest(
        order_id=snapshot.order_id,
        line_refunds=line_refunds,
        shipping_refund_amount=shipping_refund_amount,
        restock=restock,
        generate_credit_slip=generate_credit_slip,
        generate_voucher=generate_voucher,
        voucher_refund_type=voucher_refund_type,
        voucher_refund_amount=voucher_refund_amount,
    )


def prepare_partial_refund(order_id, rows: Iterable[RefundLineRequest], **flags) -> PartialRefundRequest | ProductNotFound:
    """Fetch the order's current snapshot and build a request from ``rows``."""
    return build_partial_refund(fetch_order_snapshot(order_id), rows, **flags)


def _serialize(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


def to_command(request: PartialRefundRequest) -> IssuePartialRefund:
    return IssuePartialRefund(
        order_id=request.order_id,
        order_detail_refunds=json.dumps(
            {
                order_detail_id: {"quantity": line.quantity, "amount": _serialize(line.amount)}
                for order_detail_id, line in request.line_refunds.items()
            }
        ),
        # An unreadable shipping amount is sent as-is so the domain rejects it
        shipping_cost_refund="NaN" if request.shipping_refund_amount is None else str(request.shipping_refund_amount),
        restock=request.restock,
        generate_credit_slip=request.generate_credit_slip,
        generate_voucher=request.generate_voucher,
        voucher_refund_type=request.voucher_refund_type.value,
        voucher_refund_amount=_serialize(request.voucher_refund_amount),
    )


def submit_partial_refund(request: PartialRefundRequest):
    """Issue the refund through the domain.

    Domain errors (``InvalidRefundError`` and Protean's validation errors)
    propagate to the caller unchanged.
    """
    logger.debug(
        "Submitting partial refund",
        order_id=request.order_id,
        lines=len(request.line_refunds),
        shipping_refund=_serialize(request.shipping_refund_amount),
    )
    return current_domain.process(to_command(request), asynchronous=False)
