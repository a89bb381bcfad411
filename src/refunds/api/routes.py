"""FastAPI routes for the Refunds domain: orders, partial refunds, credit slips."""

import json

from fastapi import APIRouter, HTTPException
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from refunds.api.schemas import (
    CreditSlipResponse,
    IssuePartialRefundRequest,
    OrderIdResponse,
    OrderProductResponse,
    OrderResponse,
    PartialRefundResponse,
    PlaceOrderRequest,
    RefundErrorResponse,
)
from refunds.order.exceptions import InvalidRefundError
from refunds.order.partial_refund import (
    ProductNotFound,
    RefundLineRequest,
    prepare_partial_refund,
    submit_partial_refund,
)
from refunds.order.placement import PlaceOrder
from refunds.order.viewing import credit_slips_of, fetch_order_snapshot
from refunds.utils.logging import add_context

order_router = APIRouter(prefix="/orders", tags=["orders"])


def _not_found(order_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"Order {order_id} not found")


@order_router.post("", status_code=201, response_model=OrderIdResponse)
async def place_order(body: PlaceOrderRequest) -> OrderIdResponse:
    command = PlaceOrder(
        customer_id=body.customer_id,
        products=json.dumps([product.model_dump() for product in body.products]),
        shipping_cost_tax_incl=body.shipping_cost_tax_incl,
        shipping_cost_tax_excl=body.shipping_cost_tax_excl,
        discount_total=body.discount_total,
        currency=body.currency,
    )
    result = current_domain.process(command, asynchronous=False)
    return OrderIdResponse(order_id=result)


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str) -> OrderResponse:
    try:
        snapshot = fetch_order_snapshot(order_id)
    except ObjectNotFoundError:
        raise _not_found(order_id) from None

    return OrderResponse(
        order_id=snapshot.order_id,
        products=[
            OrderProductResponse(
                order_detail_id=product.order_detail_id,
                name=product.name,
                quantity=product.quantity,
                quantity_refunded=product.quantity_refunded,
                unit_price_tax_incl=product.unit_price_tax_incl,
            )
            for product in snapshot.products
        ],
    )


@order_router.post("/{order_id}/partial-refunds", response_model=PartialRefundResponse)
async def issue_partial_refund(order_id: str, body: IssuePartialRefundRequest) -> PartialRefundResponse:
    """Refund an order by product name.

    1. Resolve product names against the order's current lines
    2. Issue the refund through the domain
    """
    add_context(order_id=order_id)
    rows = [RefundLineRequest(product_name=row.product_name, quantity=row.quantity, amount=row.amount) for row in body.refunds]

    try:
        request = prepare_partial_refund(
            order_id,
            rows,
            restock=body.restock,
            generate_credit_slip=body.generate_credit_slip,
            generate_voucher=body.generate_voucher,
            voucher_refund_type=body.voucher_refund_type,
            voucher_refund_amount=body.voucher_refund_amount,
        )
    except ObjectNotFoundError:
        raise _not_found(order_id) from None

    if isinstance(request, ProductNotFound):
        raise HTTPException(status_code=404, detail=str(request))

    try:
        credit_slip_number = submit_partial_refund(request)
    except InvalidRefundError as exc:
        raise HTTPException(
            status_code=422,
            detail=RefundErrorResponse(
                kind=exc.kind.value,
                message=exc.message,
                refundable_quantity=exc.refundable_quantity,
            ).model_dump(),
        ) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.messages) from exc

    return PartialRefundResponse(credit_slip_number=credit_slip_number)


@order_router.get("/{order_id}/credit-slips", response_model=list[CreditSlipResponse])
async def list_credit_slips(order_id: str) -> list[CreditSlipResponse]:
    try:
        slips = credit_slips_of(order_id)
    except ObjectNotFoundError:
        raise _not_found(order_id) from None

    return [
        CreditSlipResponse(
            number=slip.number,
            amount=slip.amount,
            shipping_cost_amount=slip.shipping_cost_amount,
            total_products_tax_incl=slip.total_products_tax_incl,
            total_products_tax_excl=slip.total_products_tax_excl,
            total_shipping_tax_incl=slip.total_shipping_tax_incl,
            total_shipping_tax_excl=slip.total_shipping_tax_excl,
        )
        for slip in slips
    ]
