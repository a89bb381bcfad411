"""Pydantic request/response schemas for the Refunds API.

These are external contracts (anti-corruption layer), separate from
internal Protean commands.
"""

from decimal import Decimal

from pydantic import BaseModel, Field

from refunds.order.order import VoucherRefundType


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class OrderProductSchema(BaseModel):
    name: str
    quantity: int = Field(ge=1)
    unit_price_tax_incl: float = Field(ge=0)
    unit_price_tax_excl: float | None = Field(default=None, ge=0)


class PlaceOrderRequest(BaseModel):
    customer_id: str
    products: list[OrderProductSchema] = Field(min_length=1)
    shipping_cost_tax_incl: float = Field(default=0.0, ge=0)
    shipping_cost_tax_excl: float | None = Field(default=None, ge=0)
    discount_total: float = Field(default=0.0, ge=0)
    currency: str = Field(default="USD", max_length=3)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "customer_id": "cust-001",
                    "products": [
                        {"name": "T-Shirt", "quantity": 2, "unit_price_tax_incl": 12.0, "unit_price_tax_excl": 10.0}
                    ],
                    "shipping_cost_tax_incl": 7.0,
                    "shipping_cost_tax_excl": 6.0,
                }
            ]
        }
    }


class OrderIdResponse(BaseModel):
    order_id: str


class OrderProductResponse(BaseModel):
    order_detail_id: str
    name: str
    quantity: int
    quantity_refunded: int
    unit_price_tax_incl: float


class OrderResponse(BaseModel):
    order_id: str
    products: list[OrderProductResponse]


# ---------------------------------------------------------------------------
# Partial refunds
# ---------------------------------------------------------------------------
class RefundRowSchema(BaseModel):
    """A refund row naming a product, or ``shipping_refund`` for shipping."""

    product_name: str
    quantity: int = 0
    amount: Decimal


class IssuePartialRefundRequest(BaseModel):
    refunds: list[RefundRowSchema]
    restock: bool = False
    generate_credit_slip: bool = True
    generate_voucher: bool = False
    voucher_refund_type: VoucherRefundType = VoucherRefundType.PRODUCT_PRICES_EXCLUDING_VOUCHER_REFUND
    voucher_refund_amount: Decimal | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "refunds": [
                        {"product_name": "T-Shirt", "quantity": 1, "amount": "10.00"},
                        {"product_name": "shipping_refund", "amount": "5.00"},
                    ],
                    "restock": True,
                    "generate_credit_slip": True,
                }
            ]
        }
    }


class CreditSlipResponse(BaseModel):
    number: int
    amount: float
    shipping_cost_amount: float
    total_products_tax_incl: float
    total_products_tax_excl: float
    total_shipping_tax_incl: float
    total_shipping_tax_excl: float


class PartialRefundResponse(BaseModel):
    status: str = "refunded"
    credit_slip_number: int | None = None


class RefundErrorResponse(BaseModel):
    kind: str
    message: str
    refundable_quantity: int | None = None
