from datetime import date, datetime
from decimal import Decimal

from kontor.models.document import Company, DocumentData, DocumentType, LineItem
from kontor.services.documents import generate_document_number, new_document, recalculate

NOW = datetime(2024, 6, 1, 9, 30)


def test_document_number_format():
    number = generate_document_number(DocumentType.INVOICE, NOW)
    prefix, day, sequence = number.split("-")
    assert prefix == "R"
    assert day == "20240601"
    assert len(sequence) == 6 and sequence.isdigit()
    assert generate_document_number(DocumentType.QUOTE, NOW).startswith("A-20240601-")
    assert generate_document_number(DocumentType.LETTER, NOW).startswith("B-20240601-")


def test_new_letter_has_default_greeting():
    company = Company(name="Muster GmbH")
    document = new_document(DocumentType.LETTER, company, now=NOW)
    assert document.letter_greeting == "Sehr geehrte Damen und Herren,"
    assert document.date == date(2024, 6, 1)
    assert document.id.startswith("doc-")
    assert document.customer.country == "Deutschland"
    assert document.company == company and document.company is not company


def test_new_invoice_has_no_letter_fields():
    document = new_document(DocumentType.INVOICE, Company(), now=NOW)
    assert document.letter_greeting is None
    assert document.total == Decimal("0.00")


def test_recalculate_replaces_stale_totals():
    """Gespeicherte Summen werden nie übernommen, sondern neu berechnet."""
    document = DocumentData(
        document_number="R-1",
        date=date(2024, 6, 1),
        line_items=[LineItem(position=3, quantity=2, unit_price=49.99), LineItem(position=5, quantity=1, unit_price=10)],
        subtotal=1,
        vat_amount=1,
        total=1,
    )
    result = recalculate(document)
    assert (result.subtotal, result.vat_amount, result.total) == (Decimal("109.98"), Decimal("20.90"), Decimal("130.88"))
    assert [item.position for item in result.line_items] == [1, 2]
    assert document.total == Decimal("1")


def test_toggle_small_business_recomputes():
    document = recalculate(DocumentData(document_number="R-1", date=date(2024, 6, 1),
                                        line_items=[LineItem(quantity=1, unit_price=100)]))
    exempt = recalculate(document.model_copy(update={"is_small_business": True}))
    assert document.vat_amount == Decimal("19.00")
    assert exempt.vat_amount == Decimal("0")
    assert exempt.total == exempt.subtotal == Decimal("100.00")


def test_type_normalization():
    """Fälligkeitsdatum nur bei Rechnungen, Brieffelder nur bei Briefen."""
    quote = DocumentData(type="quote", document_number="A-1", date="2024-06-01", due_date="2024-07-01",
                         letter_subject="x")
    assert quote.due_date is None
    assert quote.letter_subject is None

    invoice = DocumentData(document_number="R-1", date="2024-06-01", due_date="")
    assert invoice.due_date is None

    letter = DocumentData(type="letter", document_number="B-1", date="2024-06-01",
                          line_items=[{"quantity": 1, "unit_price": 5}])
    assert letter.line_items == []
    assert recalculate(letter).total == Decimal("0.00")
