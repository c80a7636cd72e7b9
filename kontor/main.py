from fastapi import FastAPI, HTTPException, Security, Depends
from fastapi.responses import Response, FileResponse
from fastapi.security import APIKeyHeader
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import logging
import os
from pathlib import Path
from typing import List, Optional

from kontor.models.document import DocumentData, DocumentType, Company
from kontor.models.template import CompanyTemplate, LineItemTemplate
from kontor.services.documents import new_document, recalculate
from kontor.services.formatting import document_filename
from kontor.services.layout import build_layout
from kontor.services.pdf_generator import generate_pdf
from kontor.services.xml_generator import generate_xml
from kontor.services.facturx_builder import build_facturx
from kontor.services.storage import DocumentRepository, JsonDocumentRepository, TemplateRepository

import json
import time

class JSONFormatter(logging.Formatter):
    def format(self, record):
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "extra") and isinstance(record.extra, dict):
            log_data.update(record.extra)
        return json.dumps(log_data, ensure_ascii=False, default=str)

# Vorhandene Handler entfernen und JSON-Ausgabe setzen
root_logger = logging.getLogger()
root_logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
for h in root_logger.handlers[:]:
    root_logger.removeHandler(h)
handler = logging.StreamHandler()
handler.setFormatter(JSONFormatter())
root_logger.addHandler(handler)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Kontor",
    description="Rechnungen, Angebote und Geschäftsbriefe nach deutschen Vorgaben",
    version="1.0.0"
)

# Ablageverzeichnis
STORAGE_DIR = Path(os.getenv("STORAGE_DIR", "./storage"))
EXPORT_DIR = STORAGE_DIR / "exports"
EXPORT_DIR.mkdir(parents=True, exist_ok=True)

# API-Schlüssel
API_KEY = os.getenv("API_KEY", "dev-secret-key")
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

document_repository = JsonDocumentRepository(STORAGE_DIR)
template_repository = TemplateRepository(STORAGE_DIR)


# Fehler bei der Validierung der Anfrage (422)
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc):
    return JSONResponse(
        status_code=422,
        content={
            "error": "Ungültige Daten",
            "detail": str(exc.errors())
        }
    )


def _load_api_keys() -> dict:
    clients_json = os.getenv("CLIENTS", "{}")
    try:
        clients = json.loads(clients_json)
    except json.JSONDecodeError:
        logger.warning("CLIENTS ist kein gültiges JSON, verwende API_KEY")
        clients = {}
    return clients or {"default": API_KEY}


def verify_api_key(api_key: str = Security(api_key_header)) -> str:
    clients = _load_api_keys()
    for client_name, client_key in clients.items():
        if api_key == client_key:
            return client_name
    raise HTTPException(
        status_code=403,
        detail={"error": "API-Schlüssel ungültig oder fehlend"}
    )


def get_document_repository() -> DocumentRepository:
    return document_repository


def get_template_repository() -> TemplateRepository:
    return template_repository


def _pdf_response(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


def _render(document: DocumentData, zugferd: bool = False) -> bytes:
    layout = build_layout(document)
    pdf_bytes = generate_pdf(layout, author=document.company.name)
    if zugferd:
        xml_bytes = generate_xml(document)
        pdf_bytes = build_facturx(pdf_bytes, xml_bytes, document)
    return pdf_bytes


def compliance_warnings(document: DocumentData) -> List[str]:
    """Hinweise auf fehlende Pflichtangaben, ohne die Erzeugung zu verhindern."""
    warnings = []
    if document.type == DocumentType.LETTER:
        if not (document.letter_content or "").strip():
            warnings.append("Brieftext ist leer")
        return warnings
    company = document.company
    if not document.line_items:
        warnings.append("Keine Positionen vorhanden")
    if not company.tax_id and not company.vat_id:
        warnings.append("Steuernummer oder USt-IdNr. fehlt - Pflichtangabe nach §14 UStG")
    if not company.iban:
        warnings.append("IBAN fehlt - empfohlen für Zahlung per Überweisung")
    if not company.register_court or not company.register_number:
        warnings.append("Registergericht oder Registernummer fehlt")
    if not company.manager:
        warnings.append("Geschäftsführer fehlt")
    if document.type == DocumentType.INVOICE and not document.due_date:
        warnings.append("Fälligkeitsdatum fehlt")
    if not document.customer.name:
        warnings.append("Empfänger fehlt")
    for item in document.line_items:
        if item.quantity <= 0:
            warnings.append(f"Menge nicht positiv in Position {item.position} : {item.quantity}")
        if item.unit_price < 0:
            warnings.append(f"Negativer Einzelpreis in Position {item.position}")
    return warnings


from fastapi import APIRouter
v1 = APIRouter(prefix="/v1")


@app.get("/health")
def health_check():
    return {"status": "ok", "version": "1.0.0"}


@v1.post("/documents/draft")
async def create_draft(
    type: DocumentType = DocumentType.INVOICE,
    api_key: str = Security(verify_api_key),
    templates: TemplateRepository = Depends(get_template_repository),
):
    default_template = templates.get_default_company_template()
    company = default_template.company if default_template else Company()
    return new_document(type, company)


@v1.post("/documents/calculate")
async def calculate_document(document: DocumentData, api_key: str = Security(verify_api_key)):
    return recalculate(document)


@v1.post("/documents/layout")
async def layout_document(document: DocumentData, api_key: str = Security(verify_api_key)):
    try:
        return build_layout(recalculate(document))
    except ValueError as e:
        raise HTTPException(status_code=400, detail={"error": str(e)})


@v1.post("/documents/render")
async def render_document(document: DocumentData, zugferd: bool = False, api_key: str = Security(verify_api_key)):
    try:
        start = time.time()
        document = recalculate(document)
        logger.info("Erzeuge Dokument", extra={"extra": {"client": api_key, "type": document.type.value, "document_number": document.document_number, "customer": document.customer.name, "total": str(document.total)}})

        pdf_bytes = _render(document, zugferd=zugferd)

        filename = document_filename(document)
        filepath = EXPORT_DIR / filename
        with open(filepath, "wb") as f:
            f.write(pdf_bytes)
        duration = round((time.time() - start) * 1000)
        logger.info("Dokument erzeugt", extra={"extra": {"document_number": document.document_number, "filename": filename, "duration_ms": duration}})

        return _pdf_response(pdf_bytes, filename)
    except ValueError as e:
        logger.error(f"Validierungsfehler : {e}")
        raise HTTPException(status_code=400, detail={"error": str(e)})
    except Exception as e:
        logger.error(f"Interner Fehler : {e}")
        raise HTTPException(status_code=500, detail={"error": "Interner Fehler", "message": str(e)})


@v1.post("/documents/dry-run")
async def dry_run_document(document: DocumentData, api_key: str = Security(verify_api_key)):
    """Berechnet das Dokument und prüft Pflichtangaben, ohne ein PDF zu erzeugen."""
    start = time.time()
    document = recalculate(document)
    warnings = compliance_warnings(document)
    duration = round((time.time() - start) * 1000)
    logger.info("Probelauf durchgeführt", extra={"extra": {
        "document_number": document.document_number,
        "warnings": len(warnings),
        "duration_ms": duration
    }})
    return {
        "document_number": document.document_number,
        "subtotal": str(document.subtotal),
        "vat_amount": str(document.vat_amount),
        "total": str(document.total),
        "warnings": warnings,
        "duration_ms": duration,
    }


@v1.get("/documents")
async def list_documents(
    api_key: str = Security(verify_api_key),
    repository: DocumentRepository = Depends(get_document_repository),
):
    documents = repository.list()
    return {"count": len(documents), "documents": documents}


@v1.post("/documents")
async def save_document(
    document: DocumentData,
    api_key: str = Security(verify_api_key),
    repository: DocumentRepository = Depends(get_document_repository),
):
    return repository.save(recalculate(document))


def _get_or_404(repository: DocumentRepository, document_id: str) -> DocumentData:
    document = repository.get(document_id)
    if document is None:
        raise HTTPException(status_code=404, detail={"error": f"Dokument {document_id} nicht gefunden"})
    return document


@v1.get("/documents/{document_id}")
async def get_document(
    document_id: str,
    api_key: str = Security(verify_api_key),
    repository: DocumentRepository = Depends(get_document_repository),
):
    return _get_or_404(repository, document_id)


@v1.delete("/documents/{document_id}")
async def delete_document(
    document_id: str,
    api_key: str = Security(verify_api_key),
    repository: DocumentRepository = Depends(get_document_repository),
):
    if not repository.delete(document_id):
        raise HTTPException(status_code=404, detail={"error": f"Dokument {document_id} nicht gefunden"})
    return {"deleted": document_id}


@v1.get("/documents/{document_id}/pdf")
async def download_document_pdf(
    document_id: str,
    zugferd: bool = False,
    api_key: str = Security(verify_api_key),
    repository: DocumentRepository = Depends(get_document_repository),
):
    document = recalculate(_get_or_404(repository, document_id))
    try:
        return _pdf_response(_render(document, zugferd=zugferd), document_filename(document))
    except ValueError as e:
        raise HTTPException(status_code=400, detail={"error": str(e)})


@v1.get("/exports")
async def list_exports(api_key: str = Security(verify_api_key)):
    try:
        files = sorted(EXPORT_DIR.glob("*.pdf"), reverse=True)
        return {"count": len(files), "exports": [f.name for f in files]}
    except Exception as e:
        raise HTTPException(status_code=500, detail={"error": "Fehler beim Lesen der Ablage", "message": str(e)})


@v1.get("/exports/{filename}")
async def download_export(filename: str, api_key: str = Security(verify_api_key)):
    filepath = EXPORT_DIR / filename
    if Path(filename).name != filename or not filepath.exists():
        raise HTTPException(status_code=404, detail={"error": f"Datei {filename} nicht gefunden"})
    return FileResponse(filepath, media_type="application/pdf", filename=filename)


@v1.get("/templates/companies")
async def list_company_templates(
    api_key: str = Security(verify_api_key),
    templates: TemplateRepository = Depends(get_template_repository),
):
    return templates.list_company_templates()


@v1.get("/templates/companies/default")
async def get_default_company_template(
    api_key: str = Security(verify_api_key),
    templates: TemplateRepository = Depends(get_template_repository),
):
    template = templates.get_default_company_template()
    if template is None:
        raise HTTPException(status_code=404, detail={"error": "Keine Standardvorlage festgelegt"})
    return template


@v1.post("/templates/companies")
async def save_company_template(
    template: CompanyTemplate,
    api_key: str = Security(verify_api_key),
    templates: TemplateRepository = Depends(get_template_repository),
):
    return templates.save_company_template(template)


@v1.delete("/templates/companies/{template_id}")
async def delete_company_template(
    template_id: str,
    api_key: str = Security(verify_api_key),
    templates: TemplateRepository = Depends(get_template_repository),
):
    if not templates.delete_company_template(template_id):
        raise HTTPException(status_code=404, detail={"error": f"Vorlage {template_id} nicht gefunden"})
    return {"deleted": template_id}


@v1.get("/templates/line-items")
async def list_line_item_templates(
    category: Optional[str] = None,
    api_key: str = Security(verify_api_key),
    templates: TemplateRepository = Depends(get_template_repository),
):
    return {
        "categories": templates.line_item_categories(),
        "templates": templates.list_line_item_templates(category),
    }


@v1.post("/templates/line-items")
async def save_line_item_template(
    template: LineItemTemplate,
    api_key: str = Security(verify_api_key),
    templates: TemplateRepository = Depends(get_template_repository),
):
    return templates.save_line_item_template(template)


@v1.delete("/templates/line-items/{template_id}")
async def delete_line_item_template(
    template_id: str,
    api_key: str = Security(verify_api_key),
    templates: TemplateRepository = Depends(get_template_repository),
):
    if not templates.delete_line_item_template(template_id):
        raise HTTPException(status_code=404, detail={"error": f"Vorlage {template_id} nicht gefunden"})
    return {"deleted": template_id}


# v1-Router registrieren
app.include_router(v1)
