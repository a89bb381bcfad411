"""Shared BDD fixtures and step definitions for partial refunds."""

import json
from decimal import Decimal

import pytest
from protean.utils.globals import current_domain
from pytest_bdd import given, parsers, then, when
from refunds.order.exceptions import InvalidRefundError, InvalidRefundKind
from refunds.order.order import Order, VoucherRefundType
from refunds.order.partial_refund import (
    ProductNotFound,
    RefundLineRequest,
    prepare_partial_refund,
    submit_partial_refund,
)
from refunds.order.placement import PlaceOrder
from refunds.order.viewing import credit_slips_of, vouchers_of


def columns_hash(datatable):
    """Rows of a table with a header line, as dicts keyed by column."""
    header, *rows = datatable
    return [dict(zip(header, row)) for row in rows]


def rows_hash(datatable):
    """A two-column ``field | value`` table as a dict."""
    return {row[0]: row[1] for row in datatable}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def orders():
    """Order ids keyed by the reference scenarios use for them."""
    return {}


@pytest.fixture()
def next_order():
    """Settings applied to the next order placed in a scenario."""
    return {"shipping_cost_tax_incl": 0.0, "shipping_cost_tax_excl": 0.0, "discount_total": 0.0}


@pytest.fixture()
def error():
    """Container for the error a refund step ran into."""
    return {"exc": None}


def order_named(orders, reference):
    return current_domain.repository_for(Order).get(orders[reference])


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(
    parsers.cfparse(
        "the next order has a shipping cost of {tax_incl:f} tax included and {tax_excl:f} tax excluded"
    )
)
def _(next_order, tax_incl, tax_excl):
    next_order["shipping_cost_tax_incl"] = tax_incl
    next_order["shipping_cost_tax_excl"] = tax_excl


@given(parsers.cfparse("the next order used vouchers worth {amount:f}"))
def _(next_order, amount):
    next_order["discount_total"] = amount


@given(parsers.cfparse('there is an order "{reference}" with following products:'))
def _(orders, next_order, reference, datatable):
    products = [
        {
            "name": row["product_name"],
            "quantity": int(row["quantity"]),
            "unit_price_tax_incl": float(row["price_tax_incl"]),
            "unit_price_tax_excl": float(row["price_tax_excl"]),
        }
        for row in columns_hash(datatable)
    ]
    orders[reference] = current_domain.process(
        PlaceOrder(customer_id=f"customer-{reference}", products=json.dumps(products), **next_order),
        asynchronous=False,
    )


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
def issue_refund(orders, error, reference, datatable, **flags):
    rows = [RefundLineRequest.from_row(row) for row in columns_hash(datatable)]
    request = prepare_partial_refund(orders[reference], rows, **flags)
    if isinstance(request, ProductNotFound):
        raise request.as_error()

    error["exc"] = None
    try:
        submit_partial_refund(request)
    except InvalidRefundError as exc:
        error["exc"] = exc


@when(
    parsers.re(
        r'I issue a partial refund on "(?P<reference>.*)" (?P<restock>with|without) restock '
        r"(?P<credit_slip>with|without) credit slip (?P<voucher>with|without) voucher on following products:"
    )
)
def _(orders, error, reference, restock, credit_slip, voucher, datatable):
    issue_refund(
        orders,
        error,
        reference,
        datatable,
        restock=restock == "with",
        generate_credit_slip=credit_slip == "with",
        generate_voucher=voucher == "with",
    )


@when(
    parsers.cfparse(
        'I issue a partial refund on "{reference}" with credit slip and a voucher of {amount} on following products:'
    )
)
def _(orders, error, reference, amount, datatable):
    issue_refund(
        orders,
        error,
        reference,
        datatable,
        generate_credit_slip=True,
        generate_voucher=True,
        voucher_refund_type=VoucherRefundType.SPECIFIC_AMOUNT_REFUND,
        voucher_refund_amount=Decimal(amount),
    )


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then("I should get no refund error")
def _(error):
    assert error["exc"] is None, f"Unexpected refund error: {error['exc']!r}"


@then(parsers.cfparse('"{reference}" has {count:d} credit slips'))
def _(orders, reference, count):
    assert len(credit_slips_of(orders[reference])) == count


@then(parsers.cfparse('"{reference}" last credit slip is:'))
def _(orders, reference, datatable):
    slips = credit_slips_of(orders[reference])
    assert slips, f"{reference} has no credit slip"
    last = slips[-1]
    for name, expected in rows_hash(datatable).items():
        assert getattr(last, name) == pytest.approx(float(expected)), name


@then(parsers.cfparse('"{reference}" has a refund voucher of {amount:f}'))
def _(orders, reference, amount):
    amounts = [v.amount for v in vouchers_of(orders[reference])]
    assert any(a == pytest.approx(amount) for a in amounts), amounts


@then(parsers.cfparse('product "{name}" of "{reference}" has {refunded:d} refunded and {restocked:d} restocked'))
def _(orders, name, reference, refunded, restocked):
    detail = next(d for d in order_named(orders, reference).details if d.product_name == name)
    assert detail.quantity_refunded == refunded
    assert detail.quantity_reinjected == restocked


def _assert_refund_error(error, kind):
    assert error["exc"] is not None, "Expected a refund error but none was raised"
    assert error["exc"].kind is kind


@then("I should get error that refund quantity is invalid")
def _(error):
    _assert_refund_error(error, InvalidRefundKind.INVALID_QUANTITY)


@then(parsers.cfparse("I should get error that refund quantity is too high and max is {quantity:d}"))
def _(error, quantity):
    _assert_refund_error(error, InvalidRefundKind.QUANTITY_TOO_HIGH)
    assert error["exc"].refundable_quantity == quantity


@then("I should get error that refund amount is invalid")
def _(error):
    _assert_refund_error(error, InvalidRefundKind.INVALID_AMOUNT)


@then("I should get error that no generation is invalid")
def _(error):
    _assert_refund_error(error, InvalidRefundKind.NO_GENERATION)


@then("I should get error that no refunds is invalid")
def _(error):
    _assert_refund_error(error, InvalidRefundKind.NO_REFUNDS)
