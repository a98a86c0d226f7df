"""Editable checklist tree.

Checklists are stored as nested items, but editing a nested structure means
re-walking it for every operation. ChecklistTree flattens the items into an
id -> node map with explicit parent and child id lists, so each edit finds
its node directly, and rebuilds the nested shape on save.
"""

import logging
import secrets
import string
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from tradejournal.models.checklist import (
    CHOICE_KINDS,
    ITEM_CLASSES,
    ChecklistItem,
    ItemKind,
)

logger = logging.getLogger(__name__)

_ID_CHARS = string.ascii_lowercase + string.digits


def new_item_id() -> str:
    return "".join(secrets.choice(_ID_CHARS) for _ in range(9))


@dataclass
class Node:
    """One item with its links. ``item`` is stored without its children."""

    item: ChecklistItem
    parent: str | None = None
    children: list[str] = field(default_factory=list)


class ChecklistTree:
    def __init__(self) -> None:
        self.nodes: dict[str, Node] = {}
        self.roots: list[str] = []

    # ─── Conversion ─────────────────────────────────────────────

    @classmethod
    def from_items(cls, items: Iterable[ChecklistItem]) -> "ChecklistTree":
        tree = cls()
        for item in items:
            tree._insert(item, None)
        return tree

    def _insert(self, item: ChecklistItem, parent: str | None) -> None:
        item_id = item.id
        if item_id in self.nodes:
            # Ids must be unique for lookups; re-key the duplicate
            item_id = self._fresh_id()
            logger.warning("Duplicate checklist item id %s re-keyed to %s", item.id, item_id)
        node = Node(item=item.model_copy(update={"id": item_id, "children": []}), parent=parent)
        self.nodes[item_id] = node
        self._siblings(parent).append(item_id)
        for child in item.children:
            self._insert(child, item_id)

    def to_items(self) -> list[ChecklistItem]:
        """Rebuild the nested item list, preserving sibling order."""
        return [self._build(item_id) for item_id in self.roots]

    def _build(self, item_id: str) -> ChecklistItem:
        node = self.nodes[item_id]
        return node.item.model_copy(
            update={"children": [self._build(c) for c in node.children]}
        )

    # ─── Lookup ─────────────────────────────────────────────────

    def _node(self, item_id: str) -> Node:
        try:
            return self.nodes[item_id]
        except KeyError:
            raise KeyError(f"No checklist item {item_id}") from None

    def _siblings(self, parent: str | None) -> list[str]:
        return self.roots if parent is None else self.nodes[parent].children

    def _fresh_id(self) -> str:
        item_id = new_item_id()
        while item_id in self.nodes:
            item_id = new_item_id()
        return item_id

    def get(self, item_id: str) -> ChecklistItem:
        return self._node(item_id).item

    def __contains__(self, item_id: object) -> bool:
        return item_id in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def walk(self) -> Iterator[ChecklistItem]:
        """Depth-first, pre-order."""
        stack = list(reversed(self.roots))
        while stack:
            item_id = stack.pop()
            node = self.nodes[item_id]
            yield node.item
            stack.extend(reversed(node.children))

    def _update(self, item_id: str, **changes) -> None:
        node = self._node(item_id)
        node.item = node.item.model_copy(update=changes)

    # ─── Edits ──────────────────────────────────────────────────

    def toggle(self, item_id: str) -> bool:
        """Flip an item's completion, then re-derive its checkbox ancestors.

        Walking up from the toggled item, each checkbox ancestor becomes
        completed when any of its direct children is completed. Other kinds
        keep their own state but the walk continues past them.

        Returns:
            The item's new completion state.
        """
        node = self._node(item_id)
        completed = not node.item.completed
        self._update(item_id, completed=completed)

        parent = node.parent
        while parent is not None:
            parent_node = self.nodes[parent]
            if parent_node.item.kind == ItemKind.CHECKBOX.value:
                any_done = any(self.nodes[c].item.completed for c in parent_node.children)
                self._update(parent, completed=any_done)
            parent = parent_node.parent
        return completed

    def _new_item(
        self, text: str, kind: str, options: list[str] | None
    ) -> ChecklistItem:
        kind = ItemKind(kind).value
        data: dict = {"id": self._fresh_id(), "text": text.strip()}
        if kind in CHOICE_KINDS:
            data["options"] = [o for o in (options or []) if o.strip()]
        return ITEM_CLASSES[kind](**data)

    def add_root(
        self,
        text: str,
        kind: str = ItemKind.CHECKBOX.value,
        options: list[str] | None = None,
    ) -> str:
        """Append a top-level item. Returns its id."""
        if not text.strip():
            raise ValueError("Item text is required")
        item = self._new_item(text, kind, options)
        self.nodes[item.id] = Node(item=item)
        self.roots.append(item.id)
        return item.id

    def add_child(
        self,
        parent_id: str,
        text: str,
        kind: str = ItemKind.CHECKBOX.value,
        options: list[str] | None = None,
    ) -> str:
        """Append an item as the last child of ``parent_id``. Returns its id."""
        parent = self._node(parent_id)
        if not text.strip():
            raise ValueError("Item text is required")
        item = self._new_item(text, kind, options)
        self.nodes[item.id] = Node(item=item, parent=parent_id)
        parent.children.append(item.id)
        return item.id

    def delete(self, item_id: str) -> int:
        """Remove an item with its whole subtree. Returns how many items went."""
        node = self._node(item_id)
        self._siblings(node.parent).remove(item_id)
        removed = 0
        stack = [item_id]
        while stack:
            current = stack.pop()
            stack.extend(self.nodes.pop(current).children)
            removed += 1
        return removed

    def edit_text(self, item_id: str, text: str) -> None:
        if not text.strip():
            raise ValueError("Item text is required")
        self._update(item_id, text=text.strip())

    def set_value(self, item_id: str, value: str) -> None:
        """Set the answer of a text, dropdown or radio item.

        Raises:
            ValueError: For checkbox items, or a choice outside the options.
        """
        item = self._node(item_id).item
        if item.kind == ItemKind.CHECKBOX.value:
            raise ValueError("Checkbox items have no value")
        if item.kind in CHOICE_KINDS and value and value not in item.options:
            raise ValueError(f"{value!r} is not one of {item.options}")
        self._update(item_id, value=value)

    def _move(self, item_id: str, offset: int) -> bool:
        siblings = self._siblings(self._node(item_id).parent)
        index = siblings.index(item_id)
        target = index + offset
        if target < 0 or target >= len(siblings):
            return False
        siblings[index], siblings[target] = siblings[target], siblings[index]
        return True

    def move_up(self, item_id: str) -> bool:
        """Swap with the previous sibling. False if already first."""
        return self._move(item_id, -1)

    def move_down(self, item_id: str) -> bool:
        return self._move(item_id, 1)

    # ─── Progress ───────────────────────────────────────────────

    def counts(self) -> tuple[int, int]:
        """(total, completed) over every item at every depth."""
        total = len(self.nodes)
        completed = sum(1 for n in self.nodes.values() if n.item.completed)
        return total, completed

    def progress_pct(self) -> int:
        total, completed = self.counts()
        if total == 0:
            return 0
        return int(completed * 100 / total + 0.5)

    def duplicate(self, reset: bool = True) -> "ChecklistTree":
        """Copy of the tree with fresh ids; by default with answers cleared."""
        clone = ChecklistTree()

        def copy_into(item_id: str, parent: str | None) -> None:
            item = self.nodes[item_id].item
            changes: dict = {"id": clone._fresh_id(), "children": []}
            if reset:
                changes["completed"] = False
                if item.kind != ItemKind.CHECKBOX.value:
                    changes["value"] = ""
            new_item = item.model_copy(update=changes)
            clone.nodes[new_item.id] = Node(item=new_item, parent=parent)
            clone._siblings(parent).append(new_item.id)
            for child in self.nodes[item_id].children:
                copy_into(child, new_item.id)

        for root in self.roots:
            copy_into(root, None)
        return clone
