from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class Button:
    custom_id: str
    label: str
    style: str = "primary"
    emoji: str | None = None


@dataclass(slots=True)
class SelectOption:
    label: str
    value: str
    description: str | None = None


@dataclass(slots=True)
class Select:
    custom_id: str
    placeholder: str
    options: list[SelectOption] = field(default_factory=list)
    min_values: int = 1
    max_values: int = 1


@dataclass(slots=True)
class ActionRow:
    items: list[Button | Select] = field(default_factory=list)


@dataclass(slots=True)
class TextField:
    custom_id: str
    label: str
    style: str = "short"
    placeholder: str | None = None
    required: bool = True
    min_length: int | None = None
    max_length: int | None = None


@dataclass(slots=True)
class Form:
    custom_id: str
    title: str
    fields: list[TextField] = field(default_factory=list)


@dataclass(slots=True)
class Attachment:
    filename: str
    content: bytes
