"""Refund validation errors raised by the Order aggregate."""

from enum import Enum

from protean.exceptions import ValidationError


class InvalidRefundKind(Enum):
    INVALID_QUANTITY = "Invalid_Quantity"
    QUANTITY_TOO_HIGH = "Quantity_Too_High"
    INVALID_AMOUNT = "Invalid_Amount"
    NO_GENERATION = "No_Generation"
    NO_REFUNDS = "No_Refunds"


_MESSAGES = {
    InvalidRefundKind.INVALID_QUANTITY: ("quantity", "Refund quantity is invalid"),
    InvalidRefundKind.QUANTITY_TOO_HIGH: ("quantity", "Refund quantity is too high"),
    InvalidRefundKind.INVALID_AMOUNT: ("amount", "Refund amount is invalid"),
    InvalidRefundKind.NO_GENERATION: ("generation", "A credit slip or a voucher must be generated"),
    InvalidRefundKind.NO_REFUNDS: ("refunds", "Nothing to refund"),
}


class InvalidRefundError(ValidationError):
    """A partial refund was rejected.

    ``kind`` tells which rule failed. ``refundable_quantity`` is only set for
    ``QUANTITY_TOO_HIGH`` and holds how many units can still be refunded.
    """

    def __init__(self, kind: InvalidRefundKind, refundable_quantity: int | None = None, detail: str | None = None):
        field, message = _MESSAGES[kind]
        if kind is InvalidRefundKind.QUANTITY_TOO_HIGH:
            message = f"{message}, at most {refundable_quantity} can be refunded"
        if detail:
            message = f"{message}: {detail}"
        super().__init__({field: [message]})
        self.kind = kind
        self.refundable_quantity = refundable_quantity

    @property
    def message(self) -> str:
        return next(iter(self.messages.values()))[0]

    def __repr__(self):
        return f"InvalidRefundError(kind={self.kind.name}, refundable_quantity={self.refundable_quantity})"
