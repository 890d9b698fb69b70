"""Normalized inbound events and the typed routes parsed from their identifiers.

Every component, form and command identifier is parsed exactly once, here,
into one of the route dataclasses below. Anything that does not match a
known shape (unknown identifier, wrong event kind, malformed channel id)
becomes ``Unrouted`` so the dispatcher never has to look at raw strings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union, get_args

from utils.constants import (
    CMD_ADD_USER,
    CMD_BAN_USER,
    CMD_REMOVE_USER,
    CMD_SETUP_PANEL,
    CMD_SETUP_TICKET,
    CMD_UNBAN_USER,
    DEFAULT_BAN_REASON,
    ID_CANCEL_CLOSE,
    ID_CLAIM_TICKET,
    ID_CLOSE_TICKET,
    ID_CONFIRM_CLOSE,
    ID_OPEN_TICKET,
    ID_SETUP_SELECT_CHANNEL,
    ID_TICKET_MODAL,
    PREFIX_OPEN_CATEGORY,
    PREFIX_SETUP_ADD_CATEGORY,
    PREFIX_SETUP_CATEGORY_MODAL,
    PREFIX_SETUP_FINISH,
    PREFIX_TICKET_MODAL,
)


class EventKind(str, Enum):
    COMMAND = "command"
    BUTTON = "button"
    SELECT = "select"
    FORM_SUBMIT = "form_submit"


@dataclass(slots=True, frozen=True)
class Actor:
    id: int
    name: str
    tag: str
    role_ids: frozenset[int] = frozenset()
    is_admin: bool = False

    @property
    def mention(self) -> str:
        return f"<@{self.id}>"

    def has_role(self, role_id: int | None) -> bool:
        return role_id is not None and role_id in self.role_ids


@dataclass(slots=True)
class EventContext:
    guild_id: int
    channel_id: int
    values: list[str] = field(default_factory=list)
    fields: list[tuple[str, str]] = field(default_factory=list)
    options: dict[str, Any] = field(default_factory=dict)

    def field_value(self, custom_id: str) -> str | None:
        for key, value in self.fields:
            if key == custom_id:
                return value
        return None


@dataclass(slots=True)
class InboundEvent:
    kind: EventKind
    identifier: str
    actor: Actor
    context: EventContext


@dataclass(slots=True, frozen=True)
class OpenTicket:
    pass


@dataclass(slots=True, frozen=True)
class CloseTicket:
    pass


@dataclass(slots=True, frozen=True)
class ClaimTicket:
    pass


@dataclass(slots=True, frozen=True)
class ConfirmClose:
    pass


@dataclass(slots=True, frozen=True)
class CancelClose:
    pass


@dataclass(slots=True, frozen=True)
class SelectSetupChannel:
    channel_id: int


@dataclass(slots=True, frozen=True)
class SetupAddCategory:
    channel_id: int


@dataclass(slots=True, frozen=True)
class SetupFinish:
    channel_id: int


@dataclass(slots=True, frozen=True)
class SetupCategorySubmit:
    channel_id: int


@dataclass(slots=True, frozen=True)
class OpenCategory:
    category_id: str


@dataclass(slots=True, frozen=True)
class TicketFormSubmit:
    category_id: str | None = None


@dataclass(slots=True, frozen=True)
class SetupTicketCommand:
    pass


@dataclass(slots=True, frozen=True)
class SetupPanelCommand:
    pass


@dataclass(slots=True, frozen=True)
class AddUserCommand:
    user_id: int


@dataclass(slots=True, frozen=True)
class RemoveUserCommand:
    user_id: int


@dataclass(slots=True, frozen=True)
class BanUserCommand:
    user_id: int
    username: str
    reason: str = DEFAULT_BAN_REASON


@dataclass(slots=True, frozen=True)
class UnbanUserCommand:
    user_id: int
    username: str = ""


@dataclass(slots=True, frozen=True)
class Unrouted:
    identifier: str
    reason: str = "unknown identifier"


Route = Union[
    OpenTicket,
    CloseTicket,
    ClaimTicket,
    ConfirmClose,
    CancelClose,
    SelectSetupChannel,
    SetupAddCategory,
    SetupFinish,
    SetupCategorySubmit,
    OpenCategory,
    TicketFormSubmit,
    SetupTicketCommand,
    SetupPanelCommand,
    AddUserCommand,
    RemoveUserCommand,
    BanUserCommand,
    UnbanUserCommand,
    Unrouted,
]

ROUTE_TYPES: tuple[type, ...] = get_args(Route)

_EXACT_BUTTONS: dict[str, Route] = {
    ID_OPEN_TICKET: OpenTicket(),
    ID_CLOSE_TICKET: CloseTicket(),
    ID_CLAIM_TICKET: ClaimTicket(),
    ID_CONFIRM_CLOSE: ConfirmClose(),
    ID_CANCEL_CLOSE: CancelClose(),
}

_CHANNEL_BUTTON_PREFIXES: tuple[tuple[str, type], ...] = (
    (PREFIX_SETUP_FINISH, SetupFinish),
    (PREFIX_SETUP_ADD_CATEGORY, SetupAddCategory),
)


def _parse_snowflake(raw: Any) -> int | None:
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


def _parse_button(identifier: str) -> Route:
    exact = _EXACT_BUTTONS.get(identifier)
    if exact is not None:
        return exact
    for prefix, route_type in _CHANNEL_BUTTON_PREFIXES:
        if identifier.startswith(prefix):
            channel_id = _parse_snowflake(identifier[len(prefix):])
            if channel_id is None:
                return Unrouted(identifier, "malformed channel id")
            return route_type(channel_id)
    if identifier.startswith(PREFIX_OPEN_CATEGORY):
        category_id = identifier[len(PREFIX_OPEN_CATEGORY):]
        if not category_id:
            return Unrouted(identifier, "missing category id")
        return OpenCategory(category_id)
    return Unrouted(identifier)


def _parse_select(identifier: str, context: EventContext) -> Route:
    if identifier != ID_SETUP_SELECT_CHANNEL:
        return Unrouted(identifier)
    channel_id = _parse_snowflake(context.values[0]) if context.values else None
    if channel_id is None:
        return Unrouted(identifier, "missing or malformed selection")
    return SelectSetupChannel(channel_id)


def _parse_form(identifier: str) -> Route:
    if identifier == ID_TICKET_MODAL:
        return TicketFormSubmit(None)
    if identifier.startswith(PREFIX_SETUP_CATEGORY_MODAL):
        channel_id = _parse_snowflake(identifier[len(PREFIX_SETUP_CATEGORY_MODAL):])
        if channel_id is None:
            return Unrouted(identifier, "malformed channel id")
        return SetupCategorySubmit(channel_id)
    if identifier.startswith(PREFIX_TICKET_MODAL):
        category_id = identifier[len(PREFIX_TICKET_MODAL):]
        return TicketFormSubmit(category_id or None)
    return Unrouted(identifier)


def _parse_command(identifier: str, context: EventContext) -> Route:
    if identifier == CMD_SETUP_TICKET:
        return SetupTicketCommand()
    if identifier == CMD_SETUP_PANEL:
        return SetupPanelCommand()

    user_id = _parse_snowflake(context.options.get("user"))
    if identifier in {CMD_ADD_USER, CMD_REMOVE_USER, CMD_BAN_USER, CMD_UNBAN_USER} and user_id is None:
        return Unrouted(identifier, "missing user option")
    username = str(context.options.get("username") or "")

    if identifier == CMD_ADD_USER:
        return AddUserCommand(user_id)
    if identifier == CMD_REMOVE_USER:
        return RemoveUserCommand(user_id)
    if identifier == CMD_BAN_USER:
        reason = str(context.options.get("reason") or "").strip() or DEFAULT_BAN_REASON
        return BanUserCommand(user_id, username, reason)
    if identifier == CMD_UNBAN_USER:
        return UnbanUserCommand(user_id, username)
    return Unrouted(identifier)


def parse_route(event: InboundEvent) -> Route:
    if event.kind is EventKind.BUTTON:
        return _parse_button(event.identifier)
    if event.kind is EventKind.SELECT:
        return _parse_select(event.identifier, event.context)
    if event.kind is EventKind.FORM_SUBMIT:
        return _parse_form(event.identifier)
    if event.kind is EventKind.COMMAND:
        return _parse_command(event.identifier, event.context)
    return Unrouted(event.identifier, "unknown event kind")
