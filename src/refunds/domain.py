"""Refunds bounded context: Orders, partial refunds, and credit slips.

Handles the partial refund flow: resolving refund rows against an order's
lines, validating refund quantities and amounts, and generating credit slips
and refund vouchers.
"""

import structlog
from protean.domain import Domain

refunds = Domain(name="refunds")

logger = structlog.get_logger(__name__)
