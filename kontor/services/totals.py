# kontor/services/totals.py
"""
Berechnung von Positions-, Zwischen-, Steuer- und Gesamtbeträgen.

Alle Beträge werden kaufmännisch (ROUND_HALF_UP) auf zwei Nachkommastellen
gerundet: einmal pro Position, dann für Zwischensumme, MwSt. und Gesamtbetrag.
Bei Kleinunternehmern (§19 UStG) fällt keine Umsatzsteuer an.
"""
from decimal import Context, Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, NamedTuple

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
VAT_RATE = Decimal("0.19")

# Genug Stellen, damit Produkte zweier Eingaben nicht vorzeitig gerundet werden
_CONTEXT = Context(prec=100, rounding=ROUND_HALF_UP)


class Totals(NamedTuple):
    subtotal: Decimal
    vat_amount: Decimal
    total: Decimal


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, float):
        result = Decimal(repr(value))
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"Kein gültiger Betrag : {value!r}")
    if not result.is_finite():
        raise ValueError(f"Betrag muss endlich sein : {value!r}")
    return result


def round_money(value) -> Decimal:
    value = to_decimal(value)
    ctx = Context(prec=max(_CONTEXT.prec, value.adjusted() + 3), rounding=ROUND_HALF_UP)
    return value.quantize(CENT, context=ctx)


def line_total(quantity, unit_price) -> Decimal:
    return round_money(_CONTEXT.multiply(to_decimal(quantity), to_decimal(unit_price)))


def subtotal(line_items: Iterable) -> Decimal:
    """Summe der bereits gerundeten Positionsbeträge."""
    amount = ZERO
    for item in line_items:
        amount = _CONTEXT.add(amount, line_total(item.quantity, item.unit_price))
    return round_money(amount)


def vat(subtotal_amount, is_small_business: bool) -> Decimal:
    if is_small_business:
        return ZERO
    return round_money(_CONTEXT.multiply(to_decimal(subtotal_amount), VAT_RATE))


def grand_total(subtotal_amount, vat_amount) -> Decimal:
    return round_money(_CONTEXT.add(to_decimal(subtotal_amount), to_decimal(vat_amount)))


def compute_totals(line_items: Iterable, is_small_business: bool) -> Totals:
    net = subtotal(line_items)
    tax = vat(net, is_small_business)
    return Totals(subtotal=net, vat_amount=tax, total=grand_total(net, tax))
