"""Read side of an order: product snapshot, credit slips and vouchers.

Snapshots are frozen copies taken at call time. They are never refreshed;
fetch a new one to see later changes.
"""

from dataclasses import dataclass
from datetime import datetime

from protean.utils.globals import current_domain

from refunds.order.order import Order


@dataclass(frozen=True)
class OrderProductSnapshot:
    order_detail_id: str
    name: str
    quantity: int
    quantity_refunded: int
    unit_price_tax_incl: float


@dataclass(frozen=True)
class OrderSnapshot:
    order_id: str
    products: tuple[OrderProductSnapshot, ...]


@dataclass(frozen=True)
class CreditSlipView:
    number: int
    amount: float
    shipping_cost_amount: float
    total_products_tax_incl: float
    total_products_tax_excl: float
    total_shipping_tax_incl: float
    total_shipping_tax_excl: float
    partial: bool
    created_at: datetime | None


@dataclass(frozen=True)
class RefundVoucherView:
    code: str
    amount: float
    refund_type: str


def _load(order_id) -> Order:
    # Raises ObjectNotFoundError for unknown orders
    return current_domain.repository_for(Order).get(order_id)


def snapshot_of(order: Order) -> OrderSnapshot:
    return OrderSnapshot(
        order_id=str(order.id),
        products=tuple(
            OrderProductSnapshot(
                order_detail_id=str(detail.id),
                name=detail.product_name,
                quantity=detail.quantity,
                quantity_refunded=detail.quantity_refunded or 0,
                unit_price_tax_incl=detail.unit_price_tax_incl,
            )
            for detail in order.ordered_details()
        ),
    )


def fetch_order_snapshot(order_id) -> OrderSnapshot:
    """Products currently on the order, in the order they were placed."""
    return snapshot_of(_load(order_id))


def credit_slips_of(order_id) -> list[CreditSlipView]:
    """Credit slips of the order, oldest first."""
    return [
        CreditSlipView(
            number=slip.number,
            amount=slip.amount,
            shipping_cost_amount=slip.shipping_cost_amount,
            total_products_tax_incl=slip.total_products_tax_incl,
            total_products_tax_excl=slip.total_products_tax_excl,
            total_shipping_tax_incl=slip.total_shipping_tax_incl,
            total_shipping_tax_excl=slip.total_shipping_tax_excl,
            partial=bool(slip.partial),
            created_at=slip.created_at,
        )
        for slip in _load(order_id).ordered_credit_slips()
    ]


def vouchers_of(order_id) -> list[RefundVoucherView]:
    return [
        RefundVoucherView(code=voucher.code, amount=voucher.amount, refund_type=voucher.refund_type)
        for voucher in sorted(_load(order_id).vouchers or [], key=lambda v: v.created_at)
    ]
