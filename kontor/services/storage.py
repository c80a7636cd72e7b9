# kontor/services/storage.py
"""
Ablage von Dokumenten und Vorlagen als JSON-Dateien, eine Datei pro Sammlung.

Die Rechen- und Layoutfunktionen kennen diese Schicht nicht; nur die API
greift über die Repository-Klassen darauf zu.
"""
import json
import logging
import os
import threading
from pathlib import Path
from typing import Callable, Generic, List, Optional, Protocol, Type, TypeVar

from pydantic import BaseModel

from kontor.models.document import DocumentData
from kontor.models.template import CompanyTemplate, LineItemTemplate

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class JsonCollection(Generic[T]):
    def __init__(self, path: Path, model: Type[T]):
        self.path = Path(path)
        self.model = model
        self._lock = threading.Lock()
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _read(self) -> List[T]:
        if not self.path.exists():
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        return [self.model.model_validate(entry) for entry in raw]

    def _write(self, items: List[T]) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump([item.model_dump(mode="json") for item in items], f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.path)

    def all(self) -> List[T]:
        with self._lock:
            return self._read()

    def get(self, item_id: str) -> Optional[T]:
        return next((item for item in self.all() if item.id == item_id), None)

    def save(self, item: T) -> T:
        with self._lock:
            items = [existing for existing in self._read() if existing.id != item.id]
            items.append(item)
            self._write(items)
        logger.info("Eintrag gespeichert", extra={"extra": {"collection": self.path.stem, "id": item.id}})
        return item

    def modify(self, change: Callable[[List[T]], List[T]]) -> List[T]:
        """Lesen, ändern und schreiben unter einer einzigen Sperre."""
        with self._lock:
            items = change(self._read())
            self._write(items)
        return items

    def delete(self, item_id: str) -> bool:
        with self._lock:
            items = self._read()
            remaining = [item for item in items if item.id != item_id]
            if len(remaining) == len(items):
                return False
            self._write(remaining)
        logger.info("Eintrag gelöscht", extra={"extra": {"collection": self.path.stem, "id": item_id}})
        return True


class DocumentRepository(Protocol):
    def list(self) -> List[DocumentData]: ...

    def get(self, document_id: str) -> Optional[DocumentData]: ...

    def save(self, document: DocumentData) -> DocumentData: ...

    def delete(self, document_id: str) -> bool: ...


class JsonDocumentRepository:
    """Speichert immer das vollständige Dokument, nie einzelne Änderungen."""

    def __init__(self, storage_dir: Path):
        self._documents = JsonCollection(Path(storage_dir) / "documents.json", DocumentData)

    def list(self) -> List[DocumentData]:
        return sorted(self._documents.all(), key=lambda doc: doc.created_at, reverse=True)

    def get(self, document_id: str) -> Optional[DocumentData]:
        return self._documents.get(document_id)

    def save(self, document: DocumentData) -> DocumentData:
        return self._documents.save(document)

    def delete(self, document_id: str) -> bool:
        return self._documents.delete(document_id)


class TemplateRepository:
    def __init__(self, storage_dir: Path):
        self._companies = JsonCollection(Path(storage_dir) / "company-templates.json", CompanyTemplate)
        self._line_items = JsonCollection(Path(storage_dir) / "line-item-templates.json", LineItemTemplate)

    # Firmenvorlagen
    def list_company_templates(self) -> List[CompanyTemplate]:
        return self._companies.all()

    def save_company_template(self, template: CompanyTemplate) -> CompanyTemplate:
        if not template.is_default:
            return self._companies.save(template)

        # Es gibt höchstens eine Standardvorlage
        def make_default(existing: List[CompanyTemplate]) -> List[CompanyTemplate]:
            others = [
                item.model_copy(update={"is_default": False})
                for item in existing
                if item.id != template.id
            ]
            return [*others, template]

        self._companies.modify(make_default)
        logger.info("Standardvorlage gesetzt", extra={"extra": {"id": template.id}})
        return template

    def delete_company_template(self, template_id: str) -> bool:
        return self._companies.delete(template_id)

    def get_default_company_template(self) -> Optional[CompanyTemplate]:
        return next((t for t in self._companies.all() if t.is_default), None)

    # Positionsvorlagen
    def list_line_item_templates(self, category: Optional[str] = None) -> List[LineItemTemplate]:
        templates = self._line_items.all()
        if category:
            templates = [t for t in templates if t.category == category]
        return templates

    def line_item_categories(self) -> List[str]:
        return sorted({t.category for t in self._line_items.all() if t.category})

    def save_line_item_template(self, template: LineItemTemplate) -> LineItemTemplate:
        return self._line_items.save(template)

    def delete_line_item_template(self, template_id: str) -> bool:
        return self._line_items.delete(template_id)
