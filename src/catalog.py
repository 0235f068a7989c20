"""Tracked-item catalog: the foods, triggers, symptoms and medications a user logs."""

from __future__ import annotations

from typing import Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel

ItemCategory = Literal["food", "trigger", "symptom", "medication"]


class TrackedItem(BaseModel):
    id: str
    name: str
    category: ItemCategory
    description: Optional[str] = None
    is_custom: bool = False


DEFAULT_ITEMS: List[TrackedItem] = [
    TrackedItem(id="dairy", name="Dairy", category="food", description="Milk, cheese, yoghurt"),
    TrackedItem(id="gluten", name="Gluten", category="food", description="Wheat, barley, rye"),
    TrackedItem(id="nightshades", name="Nightshades", category="food", description="Tomato, potato, peppers"),
    TrackedItem(id="sugar", name="Sugar", category="food"),
    TrackedItem(id="alcohol", name="Alcohol", category="food"),
    TrackedItem(id="caffeine", name="Caffeine", category="food"),
    TrackedItem(id="stress", name="Stress", category="trigger"),
    TrackedItem(id="heat", name="Heat", category="trigger", description="Hot weather or sweating"),
    TrackedItem(id="friction", name="Friction", category="trigger", description="Tight clothing, rubbing"),
    TrackedItem(id="poor-sleep", name="Poor sleep", category="trigger"),
    TrackedItem(id="pain", name="Pain", category="symptom"),
    TrackedItem(id="fatigue", name="Fatigue", category="symptom"),
    TrackedItem(id="inflammation", name="Inflammation", category="symptom"),
    TrackedItem(id="drainage", name="Drainage", category="symptom"),
]


class ItemCatalog:
    """Lookup of tracked items by id; unknown ids render as themselves."""

    def __init__(self, items: Iterable[TrackedItem] = DEFAULT_ITEMS):
        self._items: Dict[str, TrackedItem] = {item.id: item for item in items}

    def add(self, item: TrackedItem) -> None:
        self._items[item.id] = item

    def get(self, item_id: str) -> Optional[TrackedItem]:
        return self._items.get(item_id)

    def name(self, item_id: str) -> str:
        item = self._items.get(item_id)
        return item.name if item else item_id

    def by_category(self, category: str) -> List[TrackedItem]:
        return [item for item in self._items.values() if item.category == category]
