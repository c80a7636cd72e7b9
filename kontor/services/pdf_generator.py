# kontor/services/pdf_generator.py
from io import BytesIO
from typing import List
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_LEFT
from reportlab.lib.styles import ParagraphStyle
from reportlab.platypus import (
    BaseDocTemplate,
    Frame,
    NextPageTemplate,
    PageTemplate,
    Paragraph,
    Spacer,
    Table,
    TableStyle,
)

from kontor.models.layout import DocumentLayout, TextBlock, TextRun

GREY = colors.HexColor("#666666")
FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"

BODY = ParagraphStyle("body", fontName=FONT, fontSize=10, leading=13)
SMALL = ParagraphStyle("small", parent=BODY, fontSize=9, leading=11)
TITLE = ParagraphStyle("title", parent=BODY, fontName=FONT_BOLD, fontSize=16, leading=20, spaceAfter=15)
NOTE = ParagraphStyle("note", parent=BODY, fontName="Helvetica-Oblique", fontSize=9, textColor=GREY, spaceAfter=15)
NOTES_BOX = ParagraphStyle("notes", parent=SMALL, backColor=colors.HexColor("#f9f9f9"), borderPadding=8, spaceBefore=8)
CELL = ParagraphStyle("cell", parent=SMALL, alignment=TA_LEFT)
HEADINGS = {
    1: ParagraphStyle("h1", parent=BODY, fontName=FONT_BOLD, fontSize=14, leading=18, spaceBefore=6),
    2: ParagraphStyle("h2", parent=BODY, fontName=FONT_BOLD, fontSize=12, leading=16, spaceBefore=4),
    3: ParagraphStyle("h3", parent=BODY, fontName=FONT_BOLD, fontSize=11, leading=14, spaceBefore=2),
}


def _to_pdf_y(layout: DocumentLayout, top: float) -> float:
    return layout.page.height - top


def _draw_block(canvas, layout: DocumentLayout, block: TextBlock) -> None:
    box = block.box
    canvas.saveState()
    if block.font_size < 9:
        canvas.setFillColor(GREY)
        canvas.setStrokeColor(GREY)
    canvas.setLineWidth(0.5)
    if block.rule_above:
        y = _to_pdf_y(layout, box.y)
        canvas.line(box.x, y, box.right, y)
    first_size = block.font_size + 3 if block.bold_first_line else block.font_size
    baseline = box.y + first_size + (6 if block.rule_above else 0)
    for index, line in enumerate(block.lines):
        font, size = FONT, block.font_size
        if block.bold_first_line and index == 0:
            font, size = FONT_BOLD, block.font_size + 3
        canvas.setFont(font, size)
        y = _to_pdf_y(layout, baseline)
        if block.align == "right":
            canvas.drawRightString(box.right, y, line)
        else:
            canvas.drawString(box.x, y, line)
        baseline += size + 3 if index == 0 and block.bold_first_line else block.leading
    if block.rule_below:
        y = _to_pdf_y(layout, baseline - block.leading + 3)
        canvas.line(box.x, y, box.right, y)
    canvas.restoreState()


def _run_markup(run: TextRun) -> str:
    text = escape(run.text)
    if run.bold and not run.heading:
        text = f"<b>{text}</b>"
    if run.italic:
        text = f"<i>{text}</i>"
    if run.underline:
        text = f"<u>{text}</u>"
    return text


def _letter_paragraphs(runs: List[TextRun]) -> list:
    """Gruppiert die Textläufe zeilenweise zu Absätzen."""
    flowables = []
    line: List[TextRun] = []
    for run in runs + [TextRun(text="\n")]:
        if run.text != "\n":
            line.append(run)
            continue
        if not line:
            flowables.append(Spacer(1, BODY.leading))
        else:
            heading = next((r.heading for r in line if r.heading), None)
            style = HEADINGS.get(heading, BODY)
            flowables.append(Paragraph("".join(_run_markup(r) for r in line), style))
        line = []
    # Der abschließende Umbruch erzeugt keine Leerzeile
    if runs and runs[-1].text == "\n":
        flowables.pop()
    return flowables


def _line_item_table(layout: DocumentLayout) -> Table:
    table_layout = layout.table
    width = layout.page.content_width
    data = [[column.label for column in table_layout.columns]]
    for row in table_layout.rows:
        data.append([Paragraph(escape(cell), CELL) if column.key == "description" else cell
                     for column, cell in zip(table_layout.columns, row)])
    table = Table(
        data,
        colWidths=[column.width_ratio * width for column in table_layout.columns],
        repeatRows=1,
        splitInRow=1,
    )
    style = [
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#f5f5f5")),
        ("FONTNAME",   (0, 0), (-1, 0), FONT_BOLD),
        ("FONTNAME",   (0, 1), (-1, -1), FONT),
        ("FONTSIZE",   (0, 0), (-1, -1), 9),
        ("LINEBELOW",  (0, 0), (-1, 0), 1, colors.black),
        ("LINEBELOW",  (0, 1), (-1, -1), 0.5, colors.HexColor("#e5e5e5")),
        ("VALIGN",     (0, 0), (-1, -1), "TOP"),
        ("PADDING",    (0, 0), (-1, -1), 6),
    ]
    for index, column in enumerate(table_layout.columns):
        if column.align == "right":
            style.append(("ALIGN", (index, 0), (index, -1), "RIGHT"))
    table.setStyle(TableStyle(style))
    return table


def _totals_table(layout: DocumentLayout) -> Table:
    width = layout.page.content_width * 0.45
    data = [[row.label, row.value] for row in layout.totals]
    table = Table(data, colWidths=[width * 0.6, width * 0.4], hAlign="RIGHT")
    style = [
        ("FONTNAME", (0, 0), (-1, -1), FONT),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("ALIGN",    (1, 0), (1, -1), "RIGHT"),
        ("PADDING",  (0, 0), (-1, -1), 2),
    ]
    for index, row in enumerate(layout.totals):
        if row.emphasized:
            style += [
                ("FONTNAME",   (0, index), (-1, index), FONT_BOLD),
                ("FONTSIZE",   (0, index), (-1, index), 10),
                ("LINEABOVE",  (0, index), (-1, index), 1, colors.black),
                ("TOPPADDING", (0, index), (-1, index), 6),
            ]
    table.setStyle(TableStyle(style))
    return table


def _story(layout: DocumentLayout) -> list:
    story = [NextPageTemplate("later")]

    # Betreff
    story.append(Paragraph(escape(layout.title), TITLE))
    for line in layout.info_lines:
        story.append(Paragraph(escape(line), SMALL))
    story.append(Spacer(1, 25))

    # Positionen und Summen
    if layout.table is not None:
        story.append(_line_item_table(layout))
        story.append(Spacer(1, 20))
    if layout.totals is not None:
        story.append(_totals_table(layout))
        story.append(Spacer(1, 15))
    if layout.small_business_note:
        story.append(Paragraph(escape(layout.small_business_note), NOTE))

    # Brieftext
    if layout.letter is not None:
        story.append(Paragraph(escape(layout.letter.greeting), BODY))
        story.append(Spacer(1, BODY.leading))
        story.extend(_letter_paragraphs(layout.letter.runs))
        story.append(Spacer(1, BODY.leading))
        story.append(Paragraph(escape(layout.letter.closing), BODY))
        story.append(Spacer(1, 2 * BODY.leading))
        story.append(Paragraph(escape(layout.letter.signatory), BODY))

    if layout.notes:
        notes = escape(layout.notes).replace("\n", "<br/>")
        story.append(Paragraph(f"<b>Anmerkungen:</b><br/>{notes}", NOTES_BOX))
    return story


def generate_pdf(layout: DocumentLayout, author: str = "") -> bytes:
    page = layout.page
    buffer = BytesIO()

    # Platz für die Fußzeile freihalten
    bottom = page.margin_bottom
    if layout.footer is not None:
        bottom = page.height - layout.footer.box.y + 12

    first_frame = Frame(
        page.margin_left, bottom, page.content_width, page.height - page.content_top - bottom,
        leftPadding=0, rightPadding=0, topPadding=0, bottomPadding=0, id="first",
    )
    later_frame = Frame(
        page.margin_left, bottom, page.content_width, page.height - page.margin_top - bottom,
        leftPadding=0, rightPadding=0, topPadding=0, bottomPadding=0, id="later",
    )

    def draw_first_page(canvas, doc):
        _draw_block(canvas, layout, layout.sender_line)
        _draw_block(canvas, layout, layout.address_window)
        _draw_block(canvas, layout, layout.issuer_block)
        draw_later_page(canvas, doc)

    def draw_later_page(canvas, doc):
        if layout.footer is not None:
            _draw_block(canvas, layout, layout.footer)

    doc = BaseDocTemplate(
        buffer,
        pagesize=(page.width, page.height),
        leftMargin=page.margin_left, rightMargin=page.margin_right,
        topMargin=page.margin_top, bottomMargin=page.margin_bottom,
        title=layout.title,
        author=author,
    )
    doc.addPageTemplates([
        PageTemplate(id="first", frames=[first_frame], onPage=draw_first_page),
        PageTemplate(id="later", frames=[later_frame], onPage=draw_later_page),
    ])
    doc.build(_story(layout))
    return buffer.getvalue()
