"""Order aggregate: order lines, credit slips and refund vouchers.

The Order is a standard CQRS aggregate (not event sourced). Refunds never
change what was bought: each OrderDetail keeps its ordered quantity and prices,
and tracks what has been refunded and restocked so far.

Partial refund rules, checked in this order before anything is mutated:
    1. Line quantities must be positive integers and amounts non-negative
       numbers.
    2. The shipping refund must be a non-negative number.
    3. Something must be refunded (a line or a shipping amount).
    4. A credit slip or a voucher must be generated.
    5. Quantities and amounts must fit in what is still refundable.
    6. Specific-amount vouchers must be positive and within the refund total.
"""

import json
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from uuid import uuid4

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer, String

from refunds.domain import refunds
from refunds.order.events import OrderPlaced, PartialRefundIssued
from refunds.order.exceptions import InvalidRefundError, InvalidRefundKind

_CENT = Decimal("0.01")
_ZERO = Decimal("0")


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class VoucherRefundType(Enum):
    PRODUCT_PRICES_EXCLUDING_VOUCHER_REFUND = "Product_Prices_Excluding_Voucher"
    PRODUCT_PRICES_REFUND = "Product_Prices"
    SPECIFIC_AMOUNT_REFUND = "Specific_Amount"


# ---------------------------------------------------------------------------
# Money helpers
# ---------------------------------------------------------------------------
def to_money(value) -> Decimal:
    """Round a monetary value half-up to cents."""
    return Decimal(str(value or 0)).quantize(_CENT, rounding=ROUND_HALF_UP)


def parse_amount(raw) -> Decimal | None:
    """Parse a monetary amount, or return None when it is not a finite number."""
    if raw is None or isinstance(raw, bool):
        return None
    try:
        amount = Decimal(str(raw).strip())
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def parse_quantity(raw) -> int | None:
    """Parse a whole quantity, or return None when it is not an integer."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    try:
        return int(str(raw).strip())
    except ValueError:
        return None


def _ratio(part, whole) -> Decimal:
    whole = Decimal(str(whole or 0))
    if whole == _ZERO:
        return Decimal("1")
    return Decimal(str(part or 0)) / whole


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@refunds.entity(part_of="Order")
class OrderDetail:
    """A line of an order: one product, its ordered quantity and unit prices.

    ``position`` keeps the order in which lines were placed, which is also the
    order product names are matched in when refund rows are resolved.
    """

    position = Integer(required=True, min_value=0)
    product_name = String(required=True, max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_price_tax_incl = Float(required=True, min_value=0.0)
    unit_price_tax_excl = Float(required=True, min_value=0.0)
    quantity_refunded = Integer(default=0)
    quantity_reinjected = Integer(default=0)
    total_refunded_tax_incl = Float(default=0.0)

    @property
    def refundable_quantity(self) -> int:
        return self.quantity - (self.quantity_refunded or 0)

    @property
    def refundable_amount(self) -> Decimal:
        return to_money(Decimal(str(self.unit_price_tax_incl)) * self.quantity) - to_money(
            self.total_refunded_tax_incl
        )


@refunds.entity(part_of="Order")
class CreditSlip:
    """A credit slip issued for a refund.

    ``amount`` is the products part (tax included) and ``shipping_cost_amount``
    the shipping part (tax included).
    """

    number = Integer(required=True, min_value=1)
    amount = Float(default=0.0)
    shipping_cost_amount = Float(default=0.0)
    total_products_tax_incl = Float(default=0.0)
    total_products_tax_excl = Float(default=0.0)
    total_shipping_tax_incl = Float(default=0.0)
    total_shipping_tax_excl = Float(default=0.0)
    partial = Boolean(default=True)
    created_at = DateTime()


@refunds.entity(part_of="Order")
class RefundVoucher:
    """A voucher handed to the customer instead of, or besides, a credit slip."""

    code = String(required=True, max_length=50)
    amount = Float(required=True, min_value=0.0)
    refund_type = String(choices=VoucherRefundType, required=True)
    created_at = DateTime()


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@refunds.aggregate
class Order:
    customer_id = Identifier(required=True)
    currency = String(max_length=3, default="USD")
    details = HasMany(OrderDetail)
    credit_slips = HasMany(CreditSlip)
    vouchers = HasMany(RefundVoucher)
    shipping_cost_tax_incl = Float(default=0.0, min_value=0.0)
    shipping_cost_tax_excl = Float(default=0.0, min_value=0.0)
    shipping_refunded_tax_incl = Float(default=0.0)
    discount_total = Float(default=0.0, min_value=0.0)  # Vouchers used when buying
    discount_deducted = Float(default=0.0)  # Part of discount_total already taken off refund vouchers
    placed_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def lines_cannot_be_refunded_beyond_ordered_quantity(self):
        for detail in self.details or []:
            if (detail.quantity_refunded or 0) > detail.quantity:
                raise ValidationError({"quantity_refunded": [f"{detail.product_name} refunded beyond ordered quantity"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        customer_id,
        details_data,
        shipping_cost_tax_incl=0.0,
        shipping_cost_tax_excl=None,
        discount_total=0.0,
        currency="USD",
    ):
        """Place an order.

        Args:
            customer_id: The customer placing the order.
            details_data: List of dicts with name, quantity, unit_price_tax_incl
                          and optionally unit_price_tax_excl (defaults to the
                          tax included price).
            shipping_cost_tax_incl: Shipping cost paid, tax included.
            shipping_cost_tax_excl: Shipping cost, tax excluded. Defaults to
                                    the tax included cost.
            discount_total: Total of the vouchers used on the order.
            currency: ISO currency code.
        """
        if not details_data:
            raise ValidationError({"details": ["An order needs at least one product"]})

        now = datetime.now(UTC)
        if shipping_cost_tax_excl is None:
            shipping_cost_tax_excl = shipping_cost_tax_incl

        order = cls(
            customer_id=customer_id,
            currency=currency,
            shipping_cost_tax_incl=shipping_cost_tax_incl or 0.0,
            shipping_cost_tax_excl=shipping_cost_tax_excl or 0.0,
            discount_total=discount_total or 0.0,
            placed_at=now,
            updated_at=now,
        )
        for position, data in enumerate(details_data):
            price_tax_incl = data.get("unit_price_tax_incl")
            price_tax_excl = data.get("unit_price_tax_excl")
            order.add_details(
                OrderDetail(
                    position=position,
                    product_name=data.get("name"),
                    quantity=data.get("quantity"),
                    unit_price_tax_incl=price_tax_incl,
                    unit_price_tax_excl=price_tax_incl if price_tax_excl is None else price_tax_excl,
                )
            )

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                customer_id=str(customer_id),
                details=json.dumps(
                    [
                        {
                            "id": str(detail.id),
                            "name": detail.product_name,
                            "quantity": detail.quantity,
                            "unit_price_tax_incl": detail.unit_price_tax_incl,
                        }
                        for detail in order.ordered_details()
                    ]
                ),
                shipping_cost_tax_incl=order.shipping_cost_tax_incl,
                discount_total=order.discount_total,
                currency=order.currency,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def ordered_details(self):
        return sorted(self.details or [], key=lambda detail: detail.position)

    def ordered_credit_slips(self):
        return sorted(self.credit_slips or [], key=lambda slip: slip.number)

    def detail(self, order_detail_id):
        return next((d for d in self.details or [] if str(d.id) == str(order_detail_id)), None)

    @property
    def refundable_shipping(self) -> Decimal:
        return to_money(self.shipping_cost_tax_incl) - to_money(self.shipping_refunded_tax_incl)

    # -------------------------------------------------------------------
    # Partial refund
    # -------------------------------------------------------------------
    def issue_partial_refund(
        self,
        line_refunds,
        shipping_refund=0,
        restock=False,
        generate_credit_slip=True,
        generate_voucher=False,
        voucher_refund_type=VoucherRefundType.PRODUCT_PRICES_EXCLUDING_VOUCHER_REFUND.value,
        voucher_refund_amount=None,
    ):
        """Refund part of the order.

        Args:
            line_refunds: Dict of order detail id to {"quantity", "amount"}.
                          Amounts are tax included.
            shipping_refund: Shipping amount to refund, tax included.
            restock: Record refunded quantities as put back in stock.
            generate_credit_slip: Append a credit slip for this refund.
            generate_voucher: Hand out a refund voucher.
            voucher_refund_type: A VoucherRefundType value.
            voucher_refund_amount: Voucher value for SPECIFIC_AMOUNT_REFUND.

        Returns:
            The generated CreditSlip, or None when no slip was requested.

        Raises:
            InvalidRefundError: The refund breaks one of the refund rules.
        """
        lines = self._validated_lines(line_refunds or {})

        shipping = parse_amount(shipping_refund if shipping_refund not in (None, "") else 0)
        if shipping is None or shipping < _ZERO:
            raise InvalidRefundError(InvalidRefundKind.INVALID_AMOUNT, detail="shipping refund")
        shipping = to_money(shipping)

        if not lines and shipping == _ZERO:
            raise InvalidRefundError(InvalidRefundKind.NO_REFUNDS)
        if not generate_credit_slip and not generate_voucher:
            raise InvalidRefundError(InvalidRefundKind.NO_GENERATION)

        for detail, quantity, amount in lines:
            if quantity > detail.refundable_quantity:
                raise InvalidRefundError(
                    InvalidRefundKind.QUANTITY_TOO_HIGH,
                    refundable_quantity=detail.refundable_quantity,
                )
            if amount > detail.refundable_amount:
                raise InvalidRefundError(InvalidRefundKind.INVALID_AMOUNT, detail=detail.product_name)
        if shipping > self.refundable_shipping:
            raise InvalidRefundError(InvalidRefundKind.INVALID_AMOUNT, detail="shipping refund")

        products_tax_incl = sum((amount for _, _, amount in lines), _ZERO)
        products_tax_excl = sum(
            (to_money(amount * _ratio(d.unit_price_tax_excl, d.unit_price_tax_incl)) for d, _, amount in lines),
            _ZERO,
        )
        shipping_tax_excl = to_money(shipping * _ratio(self.shipping_cost_tax_excl, self.shipping_cost_tax_incl))
        refund_total = products_tax_incl + shipping

        voucher_type = VoucherRefundType(voucher_refund_type)
        voucher_value, discount_deducted = _ZERO, _ZERO
        if generate_voucher:
            voucher_value, discount_deducted = self._voucher_value(voucher_type, refund_total, voucher_refund_amount)

        # All checks passed: record the refund
        now = datetime.now(UTC)
        self.discount_deducted = float(to_money(self.discount_deducted) + discount_deducted)
        for detail, quantity, amount in lines:
            detail.quantity_refunded = (detail.quantity_refunded or 0) + quantity
            detail.total_refunded_tax_incl = float(to_money(detail.total_refunded_tax_incl) + amount)
            if restock:
                detail.quantity_reinjected = (detail.quantity_reinjected or 0) + quantity
        self.shipping_refunded_tax_incl = float(to_money(self.shipping_refunded_tax_incl) + shipping)

        credit_slip = None
        if generate_credit_slip:
            credit_slip = CreditSlip(
                number=len(self.credit_slips or []) + 1,
                amount=float(products_tax_incl),
                shipping_cost_amount=float(shipping),
                total_products_tax_incl=float(products_tax_incl),
                total_products_tax_excl=float(products_tax_excl),
                total_shipping_tax_incl=float(shipping),
                total_shipping_tax_excl=float(shipping_tax_excl),
                partial=True,
                created_at=now,
            )
            self.add_credit_slips(credit_slip)

        voucher = None
        if voucher_value > _ZERO:
            voucher = RefundVoucher(
                code=f"RFD-{uuid4().hex[:10].upper()}",
                amount=float(voucher_value),
                refund_type=voucher_type.value,
                created_at=now,
            )
            self.add_vouchers(voucher)

        self.updated_at = now

        self.raise_(
            PartialRefundIssued(
                order_id=str(self.id),
                refunded_lines=json.dumps(
                    {
                        str(detail.id): {"quantity": quantity, "amount": str(amount)}
                        for detail, quantity, amount in lines
                    }
                ),
                shipping_refund=float(shipping),
                total_refund=float(refund_total),
                restocked=bool(restock),
                credit_slip_number=credit_slip.number if credit_slip else None,
                voucher_code=voucher.code if voucher else None,
                voucher_amount=voucher.amount if voucher else None,
                issued_at=now,
            )
        )
        return credit_slip

    def _validated_lines(self, line_refunds):
        """Resolve and check each requested line: (detail, quantity, amount)."""
        lines = []
        for order_detail_id, refund in line_refunds.items():
            detail = self.detail(order_detail_id)
            if detail is None:
                raise ValidationError({"order_detail_id": [f"Order detail {order_detail_id} not found on order"]})

            quantity = parse_quantity(refund.get("quantity"))
            if quantity is None or quantity <= 0:
                raise InvalidRefundError(InvalidRefundKind.INVALID_QUANTITY, detail=detail.product_name)

            amount = parse_amount(refund.get("amount"))
            if amount is None or amount < _ZERO:
                raise InvalidRefundError(InvalidRefundKind.INVALID_AMOUNT, detail=detail.product_name)

            lines.append((detail, quantity, to_money(amount)))
        return lines

    def _voucher_value(self, voucher_type, refund_total, requested_amount):
        """Return (voucher value, part of the order discount taken off it)."""
        if voucher_type is VoucherRefundType.SPECIFIC_AMOUNT_REFUND:
            amount = parse_amount(requested_amount)
            if amount is None or amount <= _ZERO or to_money(amount) > refund_total:
                raise InvalidRefundError(InvalidRefundKind.INVALID_AMOUNT, detail="voucher amount")
            return to_money(amount), _ZERO

        if voucher_type is VoucherRefundType.PRODUCT_PRICES_REFUND:
            return refund_total, _ZERO

        remaining_discount = to_money(self.discount_total) - to_money(self.discount_deducted)
        deducted = max(min(remaining_discount, refund_total), _ZERO)
        return refund_total - deducted, deducted
