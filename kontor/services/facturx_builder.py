from facturx.facturx import generate_from_binary
import logging

from kontor.models.document import DocumentData

logger = logging.getLogger(__name__)


def build_facturx(pdf_bytes: bytes, xml_bytes: bytes, document: DocumentData) -> bytes:
    try:
        pdf_metadata = {
            "author": document.company.name or "Kontor",
            "keywords": "ZUGFeRD, Factur-X, EN16931",
            "title": f"Rechnung {document.document_number}",
            "subject": f"E-Rechnung {document.document_number}",
        }
        result_pdf = generate_from_binary(
            pdf_bytes,
            xml_bytes,
            check_xsd=True,
            pdf_metadata=pdf_metadata,
            lang="de-DE",
        )
        logger.info("ZUGFeRD-Rechnung erzeugt", extra={"extra": {"document_number": document.document_number}})
        return result_pdf
    except Exception as e:
        logger.error(f"Fehler beim Einbetten der E-Rechnung : {e}")
        raise
