"""Refunds: partial order refunds, credit slips and refund vouchers."""
