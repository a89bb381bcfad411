"""Partial refund: command and handler."""

import json

from protean import handle
from protean.fields import Boolean, Identifier, String, Text
from protean.utils.globals import current_domain

from refunds.domain import logger, refunds
from refunds.order.order import Order, VoucherRefundType


@refunds.command(part_of="Order")
class IssuePartialRefund:
    """Refund part of an order, line by line and/or its shipping."""

    order_id = Identifier(required=True)
    order_detail_refunds = Text(required=True)  # JSON: {order_detail_id: {"quantity": int, "amount": str}}
    shipping_cost_refund = String(default="0")  # serialized decimal
    restock = Boolean(default=False)
    generate_credit_slip = Boolean(default=True)
    generate_voucher = Boolean(default=False)
    voucher_refund_type = String(
        choices=VoucherRefundType,
        default=VoucherRefundType.PRODUCT_PRICES_EXCLUDING_VOUCHER_REFUND.value,
    )
    voucher_refund_amount = String()  # serialized decimal, SPECIFIC_AMOUNT_REFUND only


@refunds.command_handler(part_of=Order)
class IssuePartialRefundHandler:
    @handle(IssuePartialRefund)
    def issue_partial_refund(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        line_refunds = (
            json.loads(command.order_detail_refunds)
            if isinstance(command.order_detail_refunds, str)
            else command.order_detail_refunds
        )
        credit_slip = order.issue_partial_refund(
            line_refunds=line_refunds,
            shipping_refund=command.shipping_cost_refund,
            restock=bool(command.restock),
            generate_credit_slip=bool(command.generate_credit_slip),
            generate_voucher=bool(command.generate_voucher),
            voucher_refund_type=command.voucher_refund_type,
            voucher_refund_amount=command.voucher_refund_amount,
        )
        repo.add(order)

        logger.info(
            "Partial refund issued",
            order_id=str(order.id),
            lines=len(line_refunds),
            shipping_refund=command.shipping_cost_refund,
            credit_slip_number=credit_slip.number if credit_slip else None,
        )
        return credit_slip.number if credit_slip else None
