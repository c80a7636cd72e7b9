# kontor/models/document.py
from datetime import date as Date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from kontor.services.totals import line_total

DEFAULT_COUNTRY = "Deutschland"
DEFAULT_GREETING = "Sehr geehrte Damen und Herren,"


class DocumentType(str, Enum):
    INVOICE = "invoice"
    QUOTE = "quote"
    LETTER = "letter"


class Customer(BaseModel):
    """Empfängeranschrift, als Kopie im Dokument gespeichert."""
    name: str = ""
    address: str = ""
    city: str = ""
    postal_code: str = ""
    country: str = DEFAULT_COUNTRY


class Company(BaseModel):
    """Absender mit den Pflichtangaben für Geschäftsbriefe."""
    name: str = ""
    address: str = ""
    city: str = ""
    postal_code: str = ""
    country: str = DEFAULT_COUNTRY
    phone: str = ""
    email: str = ""
    tax_id: str = ""
    vat_id: str = ""
    bank_name: str = ""
    iban: str = ""
    bic: str = ""
    register_court: str = ""
    register_number: str = ""
    manager: str = ""


class LineItem(BaseModel):
    id: str = Field(default_factory=lambda: f"item-{uuid4().hex[:12]}")
    position: int = Field(default=1, ge=1)
    description: str = ""
    quantity: Decimal = Field(default=Decimal("1"), allow_inf_nan=False)
    unit_price: Decimal = Field(default=Decimal("0"), allow_inf_nan=False)
    total: Decimal = Decimal("0.00")

    @model_validator(mode="after")
    def _derive_total(self):
        # Der Positionsbetrag wird immer aus Menge und Einzelpreis abgeleitet
        self.total = line_total(self.quantity, self.unit_price)
        return self


class DocumentData(BaseModel):
    id: str = Field(default_factory=lambda: f"doc-{uuid4().hex[:12]}")
    type: DocumentType = DocumentType.INVOICE
    document_number: str
    date: Date
    due_date: Optional[Date] = None
    customer: Customer = Field(default_factory=Customer)
    company: Company = Field(default_factory=Company)
    line_items: List[LineItem] = Field(default_factory=list)
    is_small_business: bool = False
    notes: str = ""
    subtotal: Decimal = Decimal("0.00")
    vat_amount: Decimal = Decimal("0.00")
    total: Decimal = Decimal("0.00")
    letter_subject: Optional[str] = None
    letter_greeting: Optional[str] = None
    letter_content: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)

    @field_validator("due_date", mode="before")
    @classmethod
    def _empty_due_date(cls, value):
        if value == "":
            return None
        return value

    @model_validator(mode="after")
    def _normalize_for_type(self):
        if self.type != DocumentType.INVOICE:
            self.due_date = None
        if self.type == DocumentType.LETTER:
            self.line_items = []
        else:
            self.letter_subject = None
            self.letter_greeting = None
            self.letter_content = None
        return self
