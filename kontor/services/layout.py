# kontor/services/layout.py
"""
Seitenaufbau für Rechnungen, Angebote und Briefe (A4, Fensterumschlag).

Absenderzeile, Anschriftfeld (85 × 45 mm), Firmenblock und Fußzeile stehen an
festen Positionen. Der Hauptinhalt beginnt unterhalb des Anschriftfelds,
unabhängig davon, wie viele Zeilen die Anschrift hat.
"""
import logging
from typing import List, NamedTuple, Optional

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import cm, mm

from kontor.models.document import DEFAULT_COUNTRY, DEFAULT_GREETING, Company, DocumentData, DocumentType
from kontor.models.layout import (
    Box,
    DocumentLayout,
    LetterBody,
    PageGeometry,
    TableColumn,
    TableLayout,
    TextBlock,
    TotalsRow,
)
from kontor.services.formatting import document_filename, format_currency, format_date, format_quantity, type_label
from kontor.services.rich_text import convert_markup

logger = logging.getLogger(__name__)

PAGE_WIDTH, PAGE_HEIGHT = A4
MARGIN_TOP = 2.7 * cm
MARGIN_LEFT = 2.5 * cm
MARGIN_RIGHT = 2 * cm
MARGIN_BOTTOM = 2 * cm
CONTENT_TOP = MARGIN_TOP + 200

SENDER_LINE_BOX = Box(x=MARGIN_LEFT, y=MARGIN_TOP, width=85 * mm, height=4 * mm)
ADDRESS_WINDOW_BOX = Box(x=MARGIN_LEFT, y=MARGIN_TOP + 4 * mm, width=85 * mm, height=45 * mm)
ISSUER_BLOCK_WIDTH = 200
FOOTER_FONT_SIZE = 7
FOOTER_LEADING = FOOTER_FONT_SIZE * 1.4
FOOTER_HEIGHT = 3 * FOOTER_LEADING + 6

PAGE = PageGeometry(
    width=PAGE_WIDTH,
    height=PAGE_HEIGHT,
    margin_top=MARGIN_TOP,
    margin_left=MARGIN_LEFT,
    margin_right=MARGIN_RIGHT,
    margin_bottom=MARGIN_BOTTOM,
    content_top=CONTENT_TOP,
)

LINE_ITEM_COLUMNS = [
    TableColumn(key="position", label="Pos.", width_ratio=0.08),
    TableColumn(key="description", label="Beschreibung", width_ratio=0.52),
    TableColumn(key="quantity", label="Menge", width_ratio=0.10, align="right"),
    TableColumn(key="unit_price", label="Einzelpreis", width_ratio=0.15, align="right"),
    TableColumn(key="total", label="Gesamtpreis", width_ratio=0.15, align="right"),
]

SMALL_BUSINESS_NOTE = "Gemäß §19 UStG wird keine Umsatzsteuer berechnet."
LETTER_FALLBACK_SUBJECT = "Geschäftsbrief"
LETTER_CLOSING = "Mit freundlichen Grüßen"
VAT_LABEL = "19% MwSt.:"


class TypeRules(NamedTuple):
    line_item_table: bool
    totals_block: bool
    footer: bool
    letter_body: bool


# Ein Eintrag pro Dokumenttyp; ein neuer Typ ohne Eintrag scheitert beim Import
TYPE_RULES = {
    DocumentType.INVOICE: TypeRules(line_item_table=True, totals_block=True, footer=True, letter_body=False),
    DocumentType.QUOTE: TypeRules(line_item_table=True, totals_block=True, footer=True, letter_body=False),
    DocumentType.LETTER: TypeRules(line_item_table=False, totals_block=False, footer=False, letter_body=True),
}
_missing_rules = set(DocumentType) - set(TYPE_RULES)
if _missing_rules:
    raise RuntimeError(f"Keine Layoutregeln für : {sorted(t.value for t in _missing_rules)}")


def sender_line(company: Company) -> str:
    return f"{company.name}, {company.address}, {company.postal_code} {company.city}"


def _sender_block(company: Company) -> TextBlock:
    return TextBlock(box=SENDER_LINE_BOX, lines=[sender_line(company)], font_size=7, leading=9, rule_below=True)


def _address_block(document: DocumentData) -> TextBlock:
    customer = document.customer
    lines = [
        customer.name,
        customer.address,
        f"{customer.postal_code} {customer.city}".strip(),
    ]
    if customer.country and customer.country != DEFAULT_COUNTRY:
        lines.append(customer.country)
    return TextBlock(box=ADDRESS_WINDOW_BOX, lines=lines, font_size=10, leading=12)


def _issuer_block(company: Company) -> TextBlock:
    lines = [
        company.name,
        company.address,
        f"{company.postal_code} {company.city}".strip(),
        f"Tel: {company.phone}",
        f"E-Mail: {company.email}",
        f"Steuernr.: {company.tax_id}",
        f"USt-IdNr.: {company.vat_id}",
    ]
    box = Box(
        x=PAGE_WIDTH - MARGIN_RIGHT - ISSUER_BLOCK_WIDTH,
        y=MARGIN_TOP,
        width=ISSUER_BLOCK_WIDTH,
        height=15 + 11 * (len(lines) - 1),
    )
    return TextBlock(box=box, lines=lines, font_size=9, leading=11, align="right", bold_first_line=True)


def _footer_block(company: Company) -> TextBlock:
    box = Box(
        x=MARGIN_LEFT,
        y=PAGE_HEIGHT - MARGIN_BOTTOM - FOOTER_HEIGHT,
        width=PAGE_WIDTH - MARGIN_LEFT - MARGIN_RIGHT,
        height=FOOTER_HEIGHT,
    )
    lines = [
        f"Bankverbindung: {company.bank_name} | IBAN: {company.iban} | BIC: {company.bic}",
        f"{company.register_court} {company.register_number} | Geschäftsführer: {company.manager}".strip(),
        f"Steuernummer: {company.tax_id} | USt-IdNr.: {company.vat_id}",
    ]
    return TextBlock(box=box, lines=lines, font_size=FOOTER_FONT_SIZE, leading=FOOTER_LEADING, rule_above=True)


def _title(document: DocumentData) -> str:
    if document.type == DocumentType.INVOICE:
        return f"Rechnung Nr. {document.document_number}"
    if document.type == DocumentType.QUOTE:
        return f"Angebot Nr. {document.document_number}"
    if document.type == DocumentType.LETTER:
        return document.letter_subject or LETTER_FALLBACK_SUBJECT
    raise ValueError(f"Unbekannter Dokumenttyp : {document.type}")


def _info_lines(document: DocumentData) -> List[str]:
    if document.type == DocumentType.LETTER:
        return [f"Datum: {format_date(document.date)}"]
    lines = [f"{type_label(document.type)}sdatum: {format_date(document.date)}"]
    if document.type == DocumentType.INVOICE and document.due_date:
        lines.append(f"Fälligkeitsdatum: {format_date(document.due_date)}")
    return lines


def _line_item_table(document: DocumentData) -> TableLayout:
    rows = [
        [
            str(item.position),
            item.description,
            format_quantity(item.quantity),
            format_currency(item.unit_price),
            format_currency(item.total),
        ]
        for item in sorted(document.line_items, key=lambda item: item.position)
    ]
    return TableLayout(columns=LINE_ITEM_COLUMNS, rows=rows)


def _totals_rows(document: DocumentData) -> List[TotalsRow]:
    rows = [TotalsRow(label="Zwischensumme:", value=format_currency(document.subtotal))]
    if not document.is_small_business:
        rows.append(TotalsRow(label=VAT_LABEL, value=format_currency(document.vat_amount)))
    rows.append(TotalsRow(label="Gesamtbetrag:", value=format_currency(document.total), emphasized=True))
    return rows


def _letter_body(document: DocumentData) -> LetterBody:
    company = document.company
    return LetterBody(
        greeting=document.letter_greeting or DEFAULT_GREETING,
        runs=convert_markup(document.letter_content),
        closing=LETTER_CLOSING,
        signatory=company.manager or company.name,
    )


def build_layout(document: DocumentData) -> DocumentLayout:
    rules = TYPE_RULES[document.type]

    small_business_note: Optional[str] = None
    if rules.totals_block and document.is_small_business:
        small_business_note = SMALL_BUSINESS_NOTE

    layout = DocumentLayout(
        document_type=document.type.value,
        filename=document_filename(document),
        page=PAGE,
        sender_line=_sender_block(document.company),
        address_window=_address_block(document),
        issuer_block=_issuer_block(document.company),
        title=_title(document),
        info_lines=_info_lines(document),
        table=_line_item_table(document) if rules.line_item_table else None,
        totals=_totals_rows(document) if rules.totals_block else None,
        small_business_note=small_business_note,
        notes=document.notes.strip() or None,
        letter=_letter_body(document) if rules.letter_body else None,
        footer=_footer_block(document.company) if rules.footer else None,
    )
    logger.debug("Layout erstellt", extra={"extra": {"document_number": document.document_number, "type": document.type.value}})
    return layout
