from lxml import etree

from kontor.services import rich_text
from kontor.services.rich_text import (
    BULLET,
    Heading,
    ListBlock,
    Paragraph,
    Styled,
    Text,
    convert_markup,
    parse_markup,
    strip_markup,
)


def _plain(runs):
    return "".join(run.text for run in runs)


def test_heading_bold_and_bullet_list():
    """Überschrift, fetter Text und Liste mit zwei Einträgen."""
    runs = convert_markup(
        "<h2>Betreff</h2>"
        "<p>Hallo <strong>Welt</strong> und mehr</p>"
        "<ul><li><p>Eins</p></li><li><p>Zwei</p></li></ul>"
    )
    assert _plain(runs) == "Betreff\nHallo Welt und mehr\n• Eins\n• Zwei\n"

    heading = runs[0]
    assert heading.text == "Betreff" and heading.heading == 2 and heading.bold
    assert runs[1].text == "\n"

    bold = next(run for run in runs if run.text == "Welt")
    assert bold.bold and not bold.italic
    following = runs[runs.index(bold) + 1]
    assert following.text == " und mehr"

    bullets = [run for run in runs if run.text == BULLET]
    assert len(bullets) == 2


def test_ordered_list_uses_bullets():
    runs = convert_markup("<ol><li>Erstens</li><li>Zweitens</li></ol>")
    assert _plain(runs) == "• Erstens\n• Zweitens\n"


def test_nested_styles_accumulate():
    runs = convert_markup("<p><em>kursiv <u>und unterstrichen</u></em></p>")
    assert runs[0].italic and not runs[0].underline
    assert runs[1].italic and runs[1].underline
    assert runs[1].text == "und unterstrichen"


def test_line_break_and_empty_paragraph():
    runs = convert_markup("<p>Zeile 1<br>Zeile 2</p><p></p><p>Ende</p>")
    assert _plain(runs) == "Zeile 1\nZeile 2\n\nEnde\n"


def test_plain_text_without_tags():
    assert _plain(convert_markup("Nur Text")) == "Nur Text"


def test_empty_content():
    assert convert_markup("") == []
    assert convert_markup(None) == []
    assert parse_markup("   ") == []


def test_parse_builds_typed_tree():
    nodes = parse_markup("<h1>Titel</h1><p><b>fett</b></p><ol><li>x</li></ol>")
    assert nodes[0] == Heading(1, [Text("Titel")])
    assert nodes[1] == Paragraph([Styled("bold", [Text("fett")])])
    assert isinstance(nodes[2], ListBlock) and nodes[2].ordered


def test_unknown_tags_keep_content():
    runs = convert_markup('<p><span style="color:red">rot</span> <a href="#">Link</a></p>')
    assert _plain(runs) == "rot Link\n"


def test_fallback_strips_markup(monkeypatch):
    """Nicht lesbares Markup wird als Klartext ausgegeben, ohne Fehler."""
    def broken(*args, **kwargs):
        raise etree.ParserError("Document is empty")

    monkeypatch.setattr(rich_text.lxml_html, "fragment_fromstring", broken)
    runs = convert_markup("<p>Guten <b>Tag</b> &amp; Danke</p>")
    assert len(runs) == 1
    assert runs[0].text == "Guten Tag & Danke"
    assert not runs[0].bold


def test_strip_markup():
    assert strip_markup("<h1>A</h1><p>B &lt;C&gt;</p>") == "AB <C>"


def test_heading_bold_run_and_list_without_paragraphs():
    """Fetter Text direkt zwischen Überschrift und Liste: die Liste beginnt in einer neuen Zeile."""
    runs = convert_markup("<h2>Betreff</h2><strong>Wichtig</strong><ul><li>Eins</li><li>Zwei</li></ul>")
    assert _plain(runs) == "Betreff\nWichtig\n• Eins\n• Zwei\n"
    bold = next(run for run in runs if run.text == "Wichtig")
    assert bold.bold and bold.heading is None
    assert runs[runs.index(bold) + 1].text == "\n"
    assert len([run for run in runs if run.text == BULLET]) == 2


def test_deeply_nested_markup_keeps_text():
    """Zu tief verschachteltes Markup wird als Klartext ausgegeben statt zu verschwinden."""
    runs = convert_markup("<b>" * 3000 + "x")
    assert _plain(runs) == "x"

    runs = convert_markup("<ul>" * 500 + "<li>x")
    assert "x" in _plain(runs)


def test_nested_list_without_list_item():
    runs = convert_markup("<ul><ul><li>innen</li></ul><li>außen</li></ul>")
    assert _plain(runs) == "• innen\n• außen\n"


def test_control_characters_removed():
    runs = convert_markup("\ufeff<p>Hallo Welt</p>")
    assert _plain(runs) == "Hallo Welt\n"
    assert rich_text._text_node("a\x01b\ufeff") == [Text("ab")]
    assert strip_markup("\ufeff<p>A\x01B</p>") == "AB"
