import random
from decimal import Decimal

from salesdocs.money import compute_line, compute_totals, grand_total, money
from salesdocs.schemas import LineItemIn

from conftest import EXAMPLE_ITEMS


def D(value):
    return Decimal(str(value))


def test_line_amounts_follow_discount_then_tax_order():
    line = compute_line(D("2"), D("400"), D("10"), D("21"))

    assert line.subtotal == D("800")
    assert line.discount_amount == D("80")
    assert line.net_amount == D("720")
    assert line.tax_amount == D("151.2")
    assert line.line_total == D("871.2")


def test_end_to_end_example_totals():
    items = [LineItemIn(**item) for item in EXAMPLE_ITEMS]

    second = compute_line(items[1].quantity, items[1].unit_price, items[1].discount, items[1].tax_rate)
    assert (second.subtotal, second.discount_amount, second.net_amount, second.tax_amount) == (
        D("300"), D("0"), D("300"), D("63"),
    )

    totals = compute_totals(items)
    assert totals.total_amount == D("1020")
    assert totals.total_discount == D("80")
    assert totals.total_tax == D("214.2")
    assert totals.grand_total == D("1234.2")


def test_empty_items_give_zero_totals():
    totals = compute_totals([])

    assert totals == (D("0"), D("0"), D("0"))
    assert totals.grand_total == D("0")


def test_missing_discount_and_tax_count_as_zero():
    line = compute_line(D("3"), D("19.99"))

    assert line.discount_amount == 0
    assert line.tax_amount == 0
    assert line.line_total == D("59.97")


def test_negative_values_are_computed_not_rejected():
    # validation is the schema layer's job
    line = compute_line(D("-1"), D("10"), None, D("10"))

    assert line.net_amount == D("-10")
    assert line.tax_amount == D("-1")


def test_totals_are_rounded_once_at_storage():
    # three lines of 0.333... tax each: rounding per line would give 0.99
    items = [{"quantity": "1", "unit_price": "3.33", "tax_rate": "10.01"} for _ in range(3)]
    totals = compute_totals([LineItemIn(description="x", **i) for i in items])

    assert totals.total_tax == D("3.33") * D("0.1001") * 3
    assert totals.quantized().total_tax == D("1.00")


def test_money_rounds_half_up():
    assert money(D("0.005")) == D("0.01")
    assert money(D("2.344")) == D("2.34")
    assert money(None) == D("0.00")


def test_grand_total_accepts_none():
    assert grand_total(None, D("1.50")) == D("1.50")


def test_totals_match_closed_form_for_random_items():
    rng = random.Random(20250314)

    for _ in range(200):
        items = []
        for _ in range(rng.randint(0, 6)):
            items.append(
                LineItemIn(
                    description="line",
                    quantity=D(rng.randint(1, 99999)) / 1000,
                    unit_price=D(rng.randint(0, 1000000)) / 100,
                    discount=D(rng.randint(0, 10000)) / 100,
                    tax_rate=D(rng.randint(0, 10000)) / 100,
                )
            )

        totals = compute_totals(items)

        expected_amount = sum(
            (i.quantity * i.unit_price * (1 - i.discount / 100) for i in items), D("0")
        )
        expected_tax = sum(
            (i.quantity * i.unit_price * (1 - i.discount / 100) * i.tax_rate / 100 for i in items), D("0")
        )
        expected_discount = sum((i.quantity * i.unit_price * i.discount / 100 for i in items), D("0"))

        assert money(totals.total_amount) == money(expected_amount)
        assert money(totals.total_tax) == money(expected_tax)
        assert money(totals.total_discount) == money(expected_discount)
        assert totals.total_amount >= 0
