from __future__ import annotations

STATUS_OPEN = "OPEN"
STATUS_REQUEST_CLOSE = "REQUEST_CLOSE"
STATUS_CLOSED = "CLOSED"

LIVE_STATUSES = (STATUS_OPEN, STATUS_REQUEST_CLOSE)

DEFAULT_CATEGORY_LABEL = "ticket"
DEFAULT_CATEGORY_EMOJI = "📩"
DEFAULT_BAN_REASON = "No reason provided"

# Platform limits for forms and component layouts.
MAX_FORM_FIELDS = 5
MAX_FIELD_LABEL_LENGTH = 45
MAX_FIELD_PLACEHOLDER_LENGTH = 100
MAX_BUTTON_LABEL_LENGTH = 80
MAX_BUTTONS_PER_ROW = 5
MAX_COMPONENT_ROWS = 5
MAX_SELECT_OPTIONS = 25
MAX_EMBED_DESCRIPTION_LENGTH = 4096

# Component identifiers.
ID_OPEN_TICKET = "open_ticket"
ID_CLOSE_TICKET = "close_ticket"
ID_CLAIM_TICKET = "claim_ticket"
ID_CONFIRM_CLOSE = "confirm_close"
ID_CANCEL_CLOSE = "cancel_close"
ID_SETUP_SELECT_CHANNEL = "setup_select_channel"
ID_TICKET_MODAL = "ticket_modal"

PREFIX_SETUP_FINISH = "setup_finish_"
PREFIX_SETUP_ADD_CATEGORY = "setup_add_cat_"
PREFIX_OPEN_CATEGORY = "open_cat_"
PREFIX_SETUP_CATEGORY_MODAL = "setup_cat_modal_"
PREFIX_TICKET_MODAL = "ticket_modal_"

FIELD_TICKET_REASON = "ticket_reason"
FIELD_QUESTION_PREFIX = "question_"
FIELD_CATEGORY_NAME = "cat_name"
FIELD_CATEGORY_EMOJI = "cat_emoji"

# Slash command names.
CMD_SETUP_TICKET = "setup-ticket"
CMD_SETUP_PANEL = "setup-panel"
CMD_ADD_USER = "add-user"
CMD_REMOVE_USER = "remove-user"
CMD_BAN_USER = "ban-user"
CMD_UNBAN_USER = "unban-user"
