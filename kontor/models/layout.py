# kontor/models/layout.py
# Koordinaten in Punkt (1/72 Zoll), Ursprung oben links auf der Seite.
from typing import List, Optional

from pydantic import BaseModel, Field


class Box(BaseModel):
    x: float
    y: float
    width: float
    height: float = 0.0

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def right(self) -> float:
        return self.x + self.width


class TextRun(BaseModel):
    text: str
    bold: bool = False
    italic: bool = False
    underline: bool = False
    heading: Optional[int] = None


class TextBlock(BaseModel):
    box: Box
    lines: List[str] = Field(default_factory=list)
    font_size: float = 10
    leading: float = 12
    align: str = "left"
    bold_first_line: bool = False
    rule_above: bool = False
    rule_below: bool = False


class TableColumn(BaseModel):
    key: str
    label: str
    width_ratio: float
    align: str = "left"


class TableLayout(BaseModel):
    columns: List[TableColumn]
    rows: List[List[str]] = Field(default_factory=list)


class TotalsRow(BaseModel):
    label: str
    value: str
    emphasized: bool = False


class LetterBody(BaseModel):
    greeting: str
    runs: List[TextRun] = Field(default_factory=list)
    closing: str
    signatory: str


class PageGeometry(BaseModel):
    width: float
    height: float
    margin_top: float
    margin_left: float
    margin_right: float
    margin_bottom: float
    content_top: float

    @property
    def content_width(self) -> float:
        return self.width - self.margin_left - self.margin_right


class DocumentLayout(BaseModel):
    document_type: str
    filename: str
    page: PageGeometry
    sender_line: TextBlock
    address_window: TextBlock
    issuer_block: TextBlock
    title: str
    info_lines: List[str] = Field(default_factory=list)
    table: Optional[TableLayout] = None
    totals: Optional[List[TotalsRow]] = None
    small_business_note: Optional[str] = None
    notes: Optional[str] = None
    letter: Optional[LetterBody] = None
    footer: Optional[TextBlock] = None
