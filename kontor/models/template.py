# kontor/models/template.py
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from pydantic import BaseModel, Field

from kontor.models.document import Company


class CompanyTemplate(BaseModel):
    """Gespeichertes Absenderprofil. Dokumente erhalten eine Kopie davon."""
    id: str = Field(default_factory=lambda: f"company-{uuid4().hex[:12]}")
    name: str
    company: Company
    is_default: bool = False
    created_at: datetime = Field(default_factory=datetime.now)


class LineItemTemplate(BaseModel):
    id: str = Field(default_factory=lambda: f"template-{uuid4().hex[:12]}")
    description: str
    unit_price: Decimal = Field(default=Decimal("0"), allow_inf_nan=False)
    category: str = ""
    created_at: datetime = Field(default_factory=datetime.now)
