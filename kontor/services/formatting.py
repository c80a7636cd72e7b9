# kontor/services/formatting.py
from datetime import date, datetime

from kontor.models.document import DocumentData, DocumentType
from kontor.services.totals import round_money, to_decimal

TYPE_LABELS = {
    DocumentType.INVOICE: "Rechnung",
    DocumentType.QUOTE: "Angebot",
    DocumentType.LETTER: "Brief",
}


def _group_thousands(digits: str) -> str:
    return f"{int(digits):,}".replace(",", ".")


def format_currency(amount, currency: str = "€") -> str:
    """Deutsche Schreibweise : 1.234,56 €"""
    amount = round_money(amount)
    sign = "-" if amount < 0 else ""
    int_part, dec_part = f"{abs(amount):f}".split(".")
    return f"{sign}{_group_thousands(int_part)},{dec_part} {currency}"


def format_quantity(quantity) -> str:
    """Tausenderpunkte und Dezimalkomma, Nachkommastellen nur wenn nötig : 1.234,5"""
    quantity = to_decimal(quantity)
    sign = "-" if quantity < 0 else ""
    int_part, _, dec_part = f"{abs(quantity).normalize():f}".partition(".")
    text = _group_thousands(int_part)
    return f"{sign}{text},{dec_part}" if dec_part else f"{sign}{text}"


def format_date(value) -> str:
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if isinstance(value, (date, datetime)):
        return value.strftime("%d.%m.%Y")
    raise ValueError(f"Kein gültiges Datum : {value!r}")


def type_label(document_type: DocumentType) -> str:
    return TYPE_LABELS[DocumentType(document_type)]


def document_filename(document: DocumentData, ext: str = "pdf") -> str:
    return f"{type_label(document.type)}-{document.document_number}.{ext}"
