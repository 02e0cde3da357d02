"""Homepage layout: parsing the stored ``homeLayout`` setting, composing the
homepage sections from it, and the admin-side editor that builds it.

The stored value is a JSON array of entries::

    [{"category_id": 3, "product_ids": [7, 9], "selection": "subset"}, ...]

``selection`` is one of ``all``, ``none`` or ``subset``. Values written before
``selection`` existed only carry ``product_ids``; an empty list there means
every product in the category.
"""
import json
from dataclasses import dataclass, field

ALL = 'all'
NONE = 'none'
SUBSET = 'subset'
SELECTIONS = (ALL, NONE, SUBSET)

# HomeView states
DEFAULT = 'default'
SECTIONS = 'sections'
EMPTY = 'empty'


class LayoutError(ValueError):
    pass


@dataclass(frozen=True)
class LayoutEntry:
    category_id: int
    product_ids: frozenset = frozenset()
    selection: str = ALL

    def includes(self, product):
        if product.category_id != self.category_id:
            return False
        if self.selection == ALL:
            return True
        if self.selection == NONE:
            return False
        return product.id in self.product_ids

    def to_dict(self):
        return {
            'category_id': self.category_id,
            'product_ids': sorted(self.product_ids),
            'selection': self.selection,
        }


@dataclass
class Section:
    category: object
    products: list


@dataclass
class HomeView:
    state: str
    sections: list = field(default_factory=list)
    products: list = field(default_factory=list)


def _is_int(value):
    return isinstance(value, int) and not isinstance(value, bool)


def _entry_from_raw(item):
    if not isinstance(item, dict) or not _is_int(item.get('category_id')):
        return None
    ids = item.get('product_ids')
    if not isinstance(ids, list):
        ids = []
    product_ids = frozenset(i for i in ids if _is_int(i))
    selection = item.get('selection')
    if selection not in SELECTIONS:
        selection = SUBSET if product_ids else ALL
    if selection == SUBSET and not product_ids:
        selection = ALL
    if selection != SUBSET:
        product_ids = frozenset()
    return LayoutEntry(item['category_id'], product_ids, selection)


def parse_layout(raw, strict=False):
    """Parse a stored layout value into a list of :class:`LayoutEntry`.

    Empty, missing and malformed values give an empty list. With ``strict``
    a malformed non-empty value raises :class:`LayoutError` instead, which is
    what the settings endpoint uses to reject bad input.
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return []
    try:
        data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
    except ValueError:
        if strict:
            raise LayoutError('homeLayout is not valid JSON')
        return []
    if not isinstance(data, list):
        if strict:
            raise LayoutError('homeLayout must be a JSON array')
        return []
    entries = []
    for item in data:
        entry = _entry_from_raw(item)
        if entry is None:
            if strict:
                raise LayoutError('homeLayout entries need an integer category_id')
            continue
        entries.append(entry)
    return entries


def serialize_layout(entries):
    return json.dumps([e.to_dict() for e in entries])


def compose_home(products, categories, raw):
    """Build the homepage sections for ``products`` according to ``raw``.

    ``products`` must already be in display order; sections keep it.
    """
    products = list(products)
    entries = parse_layout(raw)
    if not entries:
        return HomeView(DEFAULT, products=products)

    by_id = {c.id: c for c in categories}
    sections = []
    for entry in entries:
        category = by_id.get(entry.category_id)
        if category is None:
            continue
        chosen = [p for p in products if entry.includes(p)]
        if chosen:
            sections.append(Section(category, chosen))
    if not sections:
        return HomeView(EMPTY)
    return HomeView(SECTIONS, sections=sections)


@dataclass(eq=False)
class EditorRow:
    category: object
    products: list
    enabled: bool = False
    selection: str = ALL
    checked: set = field(default_factory=set)

    @property
    def category_id(self):
        return self.category.id

    def to_entry(self):
        if self.selection == SUBSET:
            return LayoutEntry(self.category_id, frozenset(self.checked), SUBSET)
        return LayoutEntry(self.category_id, frozenset(), self.selection)

    def to_dict(self):
        return {
            'category_id': self.category.id,
            'name': self.category.name,
            'enabled': self.enabled,
            'selection': self.selection,
            'product_ids': sorted(self.checked),
            'products': [{'id': p.id, 'title': p.title, 'checked': p.id in self.checked}
                         for p in self.products],
        }


class LayoutEditor:
    """Editable view of the homepage layout, one row per category.

    Stored entries come first in their stored order and are enabled; the
    remaining categories follow, disabled, in the order they were given.
    """

    def __init__(self, categories, products, entries=()):
        products = list(products)
        by_id = {c.id: c for c in categories}
        self.rows = []
        seen = set()
        for entry in entries:
            category = by_id.get(entry.category_id)
            if category is None or category.id in seen:
                continue
            seen.add(category.id)
            row = self._new_row(category, products)
            row.enabled = True
            row.selection = entry.selection
            if entry.selection == SUBSET:
                own = {p.id for p in row.products}
                row.checked = set(entry.product_ids) & own
                if not row.checked:
                    row.selection = ALL
            self.rows.append(row)
        for category in categories:
            if category.id not in seen:
                self.rows.append(self._new_row(category, products))

    @classmethod
    def from_setting(cls, categories, products, raw):
        return cls(categories, products, parse_layout(raw))

    @staticmethod
    def _new_row(category, products):
        return EditorRow(category, [p for p in products if p.category_id == category.id])

    def _index(self, category_id):
        for i, row in enumerate(self.rows):
            if row.category_id == category_id:
                return i
        raise LayoutError('Unknown category: %s' % category_id)

    def row(self, category_id):
        return self.rows[self._index(category_id)]

    def toggle_category(self, category_id):
        row = self.row(category_id)
        row.enabled = not row.enabled
        return row.enabled

    def _swap(self, category_id, offset):
        i = self._index(category_id)
        j = i + offset
        if 0 <= j < len(self.rows):
            self.rows[i], self.rows[j] = self.rows[j], self.rows[i]

    def move_up(self, category_id):
        self._swap(category_id, -1)

    def move_down(self, category_id):
        self._swap(category_id, 1)

    def toggle_product(self, category_id, product_id):
        row = self.row(category_id)
        if product_id not in {p.id for p in row.products}:
            raise LayoutError('Product %s is not in category %s' % (product_id, category_id))
        if product_id in row.checked:
            row.checked.discard(product_id)
        else:
            row.checked.add(product_id)
        row.selection = SUBSET if row.checked else ALL

    def select_all(self, category_id):
        row = self.row(category_id)
        row.selection = ALL
        row.checked = set()

    def select_none(self, category_id):
        row = self.row(category_id)
        row.selection = NONE
        row.checked = set()

    def apply_rows(self, submitted):
        """Replace the editor state with ``submitted`` rows.

        Each item needs ``category_id``, ``enabled``, ``selection`` and
        ``product_ids`` attributes. Submitted rows are placed first in the
        submitted order; categories not mentioned keep their relative order
        after them, disabled.
        """
        placed = []
        for item in submitted:
            row = self.row(item.category_id)
            if row in placed:
                raise LayoutError('Category %s listed twice' % item.category_id)
            own = {p.id for p in row.products}
            foreign = set(item.product_ids) - own
            if foreign:
                raise LayoutError('Product %s is not in category %s' % (min(foreign), item.category_id))
            row.enabled = item.enabled
            row.checked = set(item.product_ids) if item.selection == SUBSET else set()
            row.selection = item.selection
            if row.selection == SUBSET and not row.checked:
                row.selection = ALL
            placed.append(row)
        rest = [r for r in self.rows if r not in placed]
        for row in rest:
            row.enabled = False
        self.rows = placed + rest

    def to_entries(self):
        return [row.to_entry() for row in self.rows if row.enabled]

    def serialize(self):
        return serialize_layout(self.to_entries())

    def as_dict(self):
        return [row.to_dict() for row in self.rows]
