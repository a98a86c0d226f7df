"""Checklist models.

Checklist items form a tree. Each item is one of four kinds, stored under the
``type`` key (documents without one are plain checkboxes):

- checkbox: completion only
- text: free-text ``value``
- dropdown / radio: single choice ``value`` from ``options``
"""

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, model_validator

from tradejournal.models.base import JournalModel, utc_now_iso


class ItemKind(str, Enum):
    CHECKBOX = "checkbox"
    TEXT = "text"
    DROPDOWN = "dropdown"
    RADIO = "radio"


_KINDS = {k.value for k in ItemKind}


class _ItemBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    text: str = ""
    completed: bool = False
    children: list["ChecklistItem"] = Field(default_factory=list)


class CheckboxItem(_ItemBase):
    kind: Literal["checkbox"] = Field(default="checkbox", alias="type")

    @model_validator(mode="before")
    @classmethod
    def _unknown_kind(cls, data: Any) -> Any:
        # Unrecognized item types read as plain checkboxes
        if isinstance(data, dict) and data.get("type", "checkbox") != "checkbox":
            data = {**data, "type": "checkbox"}
        return data


class TextItem(_ItemBase):
    kind: Literal["text"] = Field(default="text", alias="type")
    value: str = ""


class DropdownItem(_ItemBase):
    kind: Literal["dropdown"] = Field(default="dropdown", alias="type")
    options: list[str] = Field(default_factory=list)
    value: str = ""


class RadioItem(_ItemBase):
    kind: Literal["radio"] = Field(default="radio", alias="type")
    options: list[str] = Field(default_factory=list)
    value: str = ""


def _item_kind(value: Any) -> str:
    if isinstance(value, dict):
        kind = value.get("type") or value.get("kind") or ItemKind.CHECKBOX.value
    else:
        kind = getattr(value, "kind", ItemKind.CHECKBOX.value)
    return kind if kind in _KINDS else ItemKind.CHECKBOX.value


ChecklistItem = Annotated[
    Union[
        Annotated[CheckboxItem, Tag("checkbox")],
        Annotated[TextItem, Tag("text")],
        Annotated[DropdownItem, Tag("dropdown")],
        Annotated[RadioItem, Tag("radio")],
    ],
    Discriminator(_item_kind),
]

CHOICE_KINDS = (ItemKind.DROPDOWN.value, ItemKind.RADIO.value)

ITEM_CLASSES: dict[str, type[_ItemBase]] = {
    ItemKind.CHECKBOX.value: CheckboxItem,
    ItemKind.TEXT.value: TextItem,
    ItemKind.DROPDOWN.value: DropdownItem,
    ItemKind.RADIO.value: RadioItem,
}

for _cls in ITEM_CLASSES.values():
    _cls.model_rebuild()


class Checklist(JournalModel):
    title: str = ""
    items: list[ChecklistItem] = Field(default_factory=list)
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)
    is_duplicate: bool | None = None
