import re
from datetime import date

import pytest

from kontor.models.document import Company, Customer, DocumentData, DocumentType, LineItem
from kontor.services.documents import recalculate
from kontor.services.layout import (
    ADDRESS_WINDOW_BOX,
    CONTENT_TOP,
    PAGE_HEIGHT,
    SMALL_BUSINESS_NOTE,
    TYPE_RULES,
    build_layout,
)
from kontor.services.pdf_generator import generate_pdf

COMPANY = Company(
    name="Muster GmbH",
    address="Musterstraße 123",
    city="Berlin",
    postal_code="10115",
    phone="+49 30 12345678",
    email="info@muster-gmbh.de",
    tax_id="123/456/78901",
    vat_id="DE123456789",
    bank_name="Deutsche Bank AG",
    iban="DE89 1001 0000 0123 4567 89",
    bic="DEUTDEFF",
    register_court="Amtsgericht Berlin-Charlottenburg",
    register_number="HRB 123456",
    manager="Max Mustermann",
)
CUSTOMER = Customer(name="Kunde AG", address="Hauptstraße 1", city="München", postal_code="80331")


def _document(document_type=DocumentType.INVOICE, **overrides):
    data = dict(
        type=document_type,
        document_number="R-20240601-123456",
        date=date(2024, 6, 1),
        due_date=date(2024, 7, 1),
        customer=CUSTOMER,
        company=COMPANY,
        line_items=[
            LineItem(position=2, description="Anfahrt", quantity=1, unit_price=10),
            LineItem(position=1, description="Beratung", quantity=2, unit_price=49.99),
        ],
    )
    data.update(overrides)
    return recalculate(DocumentData(**data))


def test_invoice_layout():
    layout = build_layout(_document())
    assert layout.title == "Rechnung Nr. R-20240601-123456"
    assert layout.info_lines == ["Rechnungsdatum: 01.06.2024", "Fälligkeitsdatum: 01.07.2024"]
    assert [column.label for column in layout.table.columns] == ["Pos.", "Beschreibung", "Menge", "Einzelpreis", "Gesamtpreis"]
    assert layout.table.rows == [
        ["1", "Beratung", "2", "49,99 €", "99,98 €"],
        ["2", "Anfahrt", "1", "10,00 €", "10,00 €"],
    ]
    assert [(row.label, row.value, row.emphasized) for row in layout.totals] == [
        ("Zwischensumme:", "109,98 €", False),
        ("19% MwSt.:", "20,90 €", False),
        ("Gesamtbetrag:", "130,88 €", True),
    ]
    assert layout.small_business_note is None
    assert layout.footer is not None
    assert layout.filename == "Rechnung-R-20240601-123456.pdf"


def test_small_business_has_note_and_no_vat_row():
    layout = build_layout(_document(is_small_business=True))
    labels = [row.label for row in layout.totals]
    assert labels == ["Zwischensumme:", "Gesamtbetrag:"]
    assert layout.totals[-1].value == "109,98 €"
    assert layout.small_business_note == SMALL_BUSINESS_NOTE


def test_quote_has_no_due_date():
    layout = build_layout(_document(DocumentType.QUOTE, document_number="A-20240601-1"))
    assert layout.title == "Angebot Nr. A-20240601-1"
    assert layout.info_lines == ["Angebotsdatum: 01.06.2024"]
    assert layout.table is not None and layout.totals is not None and layout.footer is not None


def test_letter_has_no_table_totals_or_footer():
    """Briefe haben weder Positionen noch Summen noch Fußzeile."""
    document = _document(
        DocumentType.LETTER,
        letter_subject="Ihre Anfrage",
        letter_content="<p>Vielen Dank.</p>",
        subtotal=500,
        total=500,
    )
    assert document.line_items == []
    layout = build_layout(document)
    assert layout.title == "Ihre Anfrage"
    assert layout.table is None
    assert layout.totals is None
    assert layout.footer is None
    assert layout.small_business_note is None
    assert layout.letter.greeting == "Sehr geehrte Damen und Herren,"
    assert layout.letter.closing == "Mit freundlichen Grüßen"
    assert layout.letter.signatory == "Max Mustermann"
    assert "".join(run.text for run in layout.letter.runs) == "Vielen Dank.\n"


def test_letter_subject_fallback():
    layout = build_layout(_document(DocumentType.LETTER, letter_subject=""))
    assert layout.title == "Geschäftsbrief"
    assert layout.filename == "Brief-R-20240601-123456.pdf"


def test_minimal_document_is_rendered():
    document = recalculate(DocumentData(document_number="R-1", date=date(2024, 1, 1)))
    layout = build_layout(document)
    assert layout.address_window is not None
    assert layout.issuer_block is not None
    assert layout.table.rows == []
    assert layout.totals[-1].value == "0,00 €"


def test_country_line_omitted_for_germany():
    layout = build_layout(_document())
    assert layout.address_window.lines == ["Kunde AG", "Hauptstraße 1", "80331 München"]

    abroad = CUSTOMER.model_copy(update={"country": "Österreich"})
    layout = build_layout(_document(customer=abroad))
    assert layout.address_window.lines[-1] == "Österreich"


def test_fixed_geometry():
    """Anschriftfeld 85 × 45 mm, Inhalt beginnt darunter, Fußzeile über dem unteren Rand."""
    layout = build_layout(_document())
    window = layout.address_window.box
    assert window.width == pytest.approx(240.94, abs=0.1)
    assert window.height == pytest.approx(127.56, abs=0.1)
    assert window == ADDRESS_WINDOW_BOX
    assert layout.sender_line.box.bottom <= window.y + 0.01
    assert layout.sender_line.lines == ["Muster GmbH, Musterstraße 123, 10115 Berlin"]
    assert layout.page.content_top == CONTENT_TOP
    assert CONTENT_TOP > window.bottom
    assert layout.footer.box.bottom == pytest.approx(PAGE_HEIGHT - 2 * 28.3465, abs=0.01)
    assert layout.issuer_block.align == "right"
    assert layout.issuer_block.box.right == pytest.approx(layout.page.width - layout.page.margin_right)


def test_footer_contents():
    footer = build_layout(_document()).footer.lines
    assert footer[0] == "Bankverbindung: Deutsche Bank AG | IBAN: DE89 1001 0000 0123 4567 89 | BIC: DEUTDEFF"
    assert footer[1] == "Amtsgericht Berlin-Charlottenburg HRB 123456 | Geschäftsführer: Max Mustermann"
    assert footer[2] == "Steuernummer: 123/456/78901 | USt-IdNr.: DE123456789"


def test_every_type_has_rules():
    assert set(TYPE_RULES) == set(DocumentType)


def test_generate_pdf_for_each_type():
    for document_type in DocumentType:
        pdf = generate_pdf(build_layout(_document(document_type, letter_content="<h1>Hallo</h1><ul><li>a</li></ul>")))
        assert pdf.startswith(b"%PDF")


def test_generate_pdf_paginates_long_tables():
    items = [LineItem(position=i, description=f"Position {i}", quantity=1, unit_price=1) for i in range(1, 120)]
    pdf = generate_pdf(build_layout(_document(line_items=items)))
    page_count = max(int(count) for count in re.findall(rb"/Count (\d+)", pdf))
    assert page_count >= 2


def test_generate_pdf_splits_tall_rows():
    """Eine Beschreibung, die länger als eine Seite ist, wird auf mehrere Seiten umbrochen."""
    items = [LineItem(position=1, description="wort " * 6000, quantity=1, unit_price=1)]
    pdf = generate_pdf(build_layout(_document(line_items=items)))
    assert pdf.startswith(b"%PDF")
    page_count = max(int(count) for count in re.findall(rb"/Count (\d+)", pdf))
    assert page_count >= 2
