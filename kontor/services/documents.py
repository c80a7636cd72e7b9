# kontor/services/documents.py
from datetime import datetime
from typing import Optional

from kontor.models.document import DEFAULT_GREETING, Company, Customer, DocumentData, DocumentType
from kontor.services.line_items import renumber
from kontor.services.totals import compute_totals

NUMBER_PREFIXES = {
    DocumentType.INVOICE: "R",
    DocumentType.QUOTE: "A",
    DocumentType.LETTER: "B",
}


def generate_document_number(document_type: DocumentType, now: Optional[datetime] = None) -> str:
    """<Präfix>-<JJJJMMTT>-<letzte 6 Ziffern des Zeitstempels in ms>"""
    now = now or datetime.now()
    sequence = str(int(now.timestamp() * 1000))[-6:]
    return f"{NUMBER_PREFIXES[DocumentType(document_type)]}-{now:%Y%m%d}-{sequence}"


def new_document(
    document_type: DocumentType,
    company: Company,
    customer: Optional[Customer] = None,
    now: Optional[datetime] = None,
) -> DocumentData:
    now = now or datetime.now()
    document_type = DocumentType(document_type)
    return DocumentData(
        type=document_type,
        document_number=generate_document_number(document_type, now),
        date=now.date(),
        customer=customer or Customer(),
        company=company.model_copy(deep=True),
        letter_greeting=DEFAULT_GREETING if document_type == DocumentType.LETTER else None,
        created_at=now,
    )


def recalculate(document: DocumentData) -> DocumentData:
    """Neue Kopie mit fortlaufenden Positionen und vollständig neu berechneten Summen."""
    items = renumber(sorted(document.line_items, key=lambda item: item.position))
    totals = compute_totals(items, document.is_small_business)
    return document.model_copy(update={
        "line_items": items,
        "subtotal": totals.subtotal,
        "vat_amount": totals.vat_amount,
        "total": totals.total,
    })
