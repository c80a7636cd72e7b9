# kontor/services/rich_text.py
"""
Umwandlung des Brieftextes (HTML aus dem Editor) in formatierte Textläufe.

Das HTML wird mit lxml in einen typisierten Baum übersetzt (parse_markup) und
dieser rekursiv in TextRun-Objekte zerlegt (to_runs). Lässt sich das Markup
nicht parsen, wird der Text ohne Tags als ein einziger Lauf ausgegeben.
"""
import html
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Union

from lxml import etree
from lxml import html as lxml_html

from kontor.models.layout import TextRun

logger = logging.getLogger(__name__)

BULLET = "• "
LINE_BREAK = "\n"

_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")
# Byte-Order-Mark und Steuerzeichen außer Tab, Zeilenumbruch und Wagenrücklauf
_CONTROL_RE = re.compile("[\ufeff\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


@dataclass(frozen=True)
class Text:
    text: str


@dataclass(frozen=True)
class LineBreak:
    pass


@dataclass(frozen=True)
class Styled:
    style: str  # "bold" | "italic" | "underline"
    children: List["Node"] = field(default_factory=list)


@dataclass(frozen=True)
class Heading:
    level: int
    children: List["Node"] = field(default_factory=list)


@dataclass(frozen=True)
class Paragraph:
    children: List["Node"] = field(default_factory=list)


@dataclass(frozen=True)
class ListItem:
    children: List["Node"] = field(default_factory=list)


@dataclass(frozen=True)
class ListBlock:
    ordered: bool
    items: List[Union[ListItem, "ListBlock"]] = field(default_factory=list)


Node = Union[Text, LineBreak, Styled, Heading, Paragraph, ListItem, ListBlock]

_STYLE_TAGS = {
    "b": "bold",
    "strong": "bold",
    "i": "italic",
    "em": "italic",
    "u": "underline",
    "ins": "underline",
}
_HEADING_TAGS = {"h1": 1, "h2": 2, "h3": 3, "h4": 3, "h5": 3, "h6": 3}
_PARAGRAPH_TAGS = {"p", "div", "blockquote", "pre"}
_SKIPPED_TAGS = {"script", "style", "head", "title"}


# --- Parsing -----------------------------------------------------------------

def _text_node(text: Optional[str]) -> List[Node]:
    text = _CONTROL_RE.sub("", text or "")
    if not text:
        return []
    return [Text(_WHITESPACE_RE.sub(" ", text))]


def _children(element) -> List[Node]:
    nodes = _text_node(element.text)
    for child in element:
        nodes.extend(_element_nodes(child))
        nodes.extend(_text_node(child.tail))
    return nodes


def _element_nodes(element) -> List[Node]:
    # Kommentare und Verarbeitungsanweisungen haben keinen Tag-Namen
    if not isinstance(element.tag, str):
        return []
    tag = element.tag.lower()
    if tag in _SKIPPED_TAGS:
        return []
    if tag == "br":
        return [LineBreak()]
    if tag in _STYLE_TAGS:
        return [Styled(_STYLE_TAGS[tag], _children(element))]
    if tag in _HEADING_TAGS:
        return [Heading(_HEADING_TAGS[tag], _children(element))]
    if tag in _PARAGRAPH_TAGS:
        return [Paragraph(_children(element))]
    if tag in ("ul", "ol"):
        items = []
        for child in element:
            if not isinstance(child.tag, str):
                continue
            if child.tag.lower() == "li":
                items.append(ListItem(_children(child)))
            elif child.tag.lower() in ("ul", "ol"):
                # Verschachtelte Liste ohne umschließendes li
                items.extend(_element_nodes(child))
        return [ListBlock(ordered=(tag == "ol"), items=items)]
    if tag == "li":
        return [ListItem(_children(element))]
    # span, a, font, body ... : nur der Inhalt zählt
    return _children(element)


def parse_markup(markup: str) -> Optional[List[Node]]:
    """Liefert den Knotenbaum oder None, wenn lxml das Markup ablehnt."""
    if not markup or not markup.strip():
        return []
    try:
        root = lxml_html.fragment_fromstring(markup, create_parent="div")
    except (etree.ParserError, etree.XMLSyntaxError, ValueError) as e:
        logger.warning(f"Brieftext nicht lesbar, Ausgabe als Klartext : {e}")
        return None
    if _text_lost(root, markup):
        # libxml2 kürzt zu tief verschachtelte Bäume ohne Fehlermeldung
        logger.warning("Brieftext unvollständig gelesen, Ausgabe als Klartext")
        return None
    try:
        return _children(root)
    except RecursionError:
        logger.warning("Brieftext zu tief verschachtelt, Ausgabe als Klartext")
        return None


def _text_lost(root, markup: str) -> bool:
    parsed = _WHITESPACE_RE.sub("", root.text_content())
    expected = _WHITESPACE_RE.sub("", strip_markup(markup))
    return len(parsed) < len(expected)


# --- Umwandlung in Textläufe ----------------------------------------------------

def _at_line_start(runs: List[TextRun]) -> bool:
    return not runs or runs[-1].text.endswith(LINE_BREAK) or runs[-1].text == BULLET


def _emit(runs: List[TextRun], text: str, style: dict) -> None:
    if _at_line_start(runs):
        text = text.lstrip()
    if text:
        runs.append(TextRun(text=text, **style))


def _close_block(runs: List[TextRun], start: int) -> None:
    # Ein Block endet mit genau einem Zeilenumbruch, auch bei verschachtelten Blöcken
    if len(runs) > start and runs[-1].text == LINE_BREAK:
        return
    runs.append(TextRun(text=LINE_BREAK))


def _walk(node: Node, style: dict, runs: List[TextRun]) -> None:
    if isinstance(node, Text):
        _emit(runs, node.text, style)
    elif isinstance(node, LineBreak):
        runs.append(TextRun(text=LINE_BREAK))
    elif isinstance(node, Styled):
        for child in node.children:
            _walk(child, {**style, node.style: True}, runs)
    elif isinstance(node, Heading):
        start = len(runs)
        for child in node.children:
            _walk(child, {**style, "bold": True, "heading": node.level}, runs)
        _close_block(runs, start)
    elif isinstance(node, Paragraph):
        start = len(runs)
        for child in node.children:
            _walk(child, style, runs)
        _close_block(runs, start)
    elif isinstance(node, ListBlock):
        if runs and not runs[-1].text.endswith(LINE_BREAK):
            runs.append(TextRun(text=LINE_BREAK))
        # Auch nummerierte Listen erhalten Aufzählungspunkte statt Nummern
        for item in node.items:
            _walk(item, style, runs)
    elif isinstance(node, ListItem):
        start = len(runs)
        runs.append(TextRun(text=BULLET, **style))
        for child in node.children:
            _walk(child, style, runs)
        _close_block(runs, start)
    else:
        raise TypeError(f"Unbekannter Knoten : {type(node).__name__}")


def to_runs(nodes: List[Node]) -> List[TextRun]:
    runs: List[TextRun] = []
    for node in nodes:
        _walk(node, {}, runs)
    return runs


def strip_markup(markup: str) -> str:
    text = _TAG_RE.sub("", markup or "")
    text = _CONTROL_RE.sub("", html.unescape(text))
    return text.strip()


def convert_markup(markup: Optional[str]) -> List[TextRun]:
    nodes = parse_markup(markup or "")
    if nodes is not None:
        try:
            return to_runs(nodes)
        except RecursionError:
            logger.warning("Brieftext zu tief verschachtelt, Ausgabe als Klartext")
    plain = strip_markup(markup)
    return [TextRun(text=plain)] if plain else []
