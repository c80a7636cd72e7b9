# kontor/services/line_items.py
"""Operationen auf der Positionsliste. Jede Funktion liefert eine neue Liste."""
from typing import List, Sequence

from kontor.models.document import LineItem
from kontor.models.template import LineItemTemplate


def renumber(items: Sequence[LineItem]) -> List[LineItem]:
    return [item.model_copy(update={"position": index}) for index, item in enumerate(items, start=1)]


def add_line_item(items: Sequence[LineItem], description: str = "", quantity=1, unit_price=0) -> List[LineItem]:
    new_item = LineItem(
        position=len(items) + 1,
        description=description,
        quantity=quantity,
        unit_price=unit_price,
    )
    return renumber([*items, new_item])


def add_from_template(items: Sequence[LineItem], template: LineItemTemplate) -> List[LineItem]:
    return add_line_item(items, description=template.description, quantity=1, unit_price=template.unit_price)


def update_line_item(items: Sequence[LineItem], item_id: str, **changes) -> List[LineItem]:
    changes.pop("total", None)
    changes.pop("position", None)
    updated = []
    found = False
    for item in items:
        if item.id == item_id:
            # Neu validieren, damit der Positionsbetrag neu berechnet wird
            item = LineItem.model_validate({**item.model_dump(), **changes})
            found = True
        updated.append(item)
    if not found:
        raise KeyError(item_id)
    return updated


def remove_line_item(items: Sequence[LineItem], item_id: str) -> List[LineItem]:
    remaining = [item for item in items if item.id != item_id]
    if len(remaining) == len(items):
        raise KeyError(item_id)
    return renumber(remaining)


def move_line_item(items: Sequence[LineItem], source_index: int, destination_index: int) -> List[LineItem]:
    """Verschiebt eine Position (0-basierte Indizes) und nummeriert neu."""
    count = len(items)
    if not 0 <= source_index < count or not 0 <= destination_index < count:
        raise IndexError(f"Index außerhalb der Liste : {source_index} -> {destination_index}")
    reordered = list(items)
    moved = reordered.pop(source_index)
    reordered.insert(destination_index, moved)
    return renumber(reordered)
