from __future__ import annotations

import logging

from core.components import ActionRow, Button, Form, TextField
from database.models import CategoryQuestion, TicketCategory
from database.repositories import CategoryRepository, GuildConfigRepository
from utils.constants import (
    DEFAULT_CATEGORY_EMOJI,
    FIELD_QUESTION_PREFIX,
    FIELD_TICKET_REASON,
    ID_TICKET_MODAL,
    MAX_BUTTON_LABEL_LENGTH,
    MAX_BUTTONS_PER_ROW,
    MAX_COMPONENT_ROWS,
    MAX_FIELD_LABEL_LENGTH,
    MAX_FIELD_PLACEHOLDER_LENGTH,
    MAX_FORM_FIELDS,
    PREFIX_OPEN_CATEGORY,
    PREFIX_TICKET_MODAL,
)

LOGGER = logging.getLogger(__name__)

TICKET_FORM_TITLE = "Create Ticket"
DEFAULT_QUESTION_LABEL = "Reason for ticket"
DEFAULT_MAX_ANSWER_LENGTH = 1000


class CategoryRegistry:
    """Owns category rows and turns them into ticket forms and panel buttons."""

    def __init__(self, categories: CategoryRepository, guild_configs: GuildConfigRepository) -> None:
        self.categories = categories
        self.guild_configs = guild_configs

    async def create_category(
        self,
        guild_id: int,
        name: str,
        emoji: str | None = None,
        questions: list[CategoryQuestion] | None = None,
        parent_channel_id: int | None = None,
    ) -> TicketCategory:
        await self.guild_configs.ensure(guild_id)
        category = await self.categories.create(
            config_id=guild_id,
            name=name.strip(),
            emoji=(emoji or "").strip() or DEFAULT_CATEGORY_EMOJI,
            questions=questions,
            parent_channel_id=parent_channel_id,
        )
        LOGGER.info("Created ticket category %s (%s) for guild %s", category.id, category.name, guild_id)
        return category

    async def list_categories(self, guild_id: int) -> list[TicketCategory]:
        return await self.categories.list_by_config(guild_id)

    async def get_category(self, category_id: str | None) -> TicketCategory | None:
        if not category_id:
            return None
        return await self.categories.get(category_id)

    @staticmethod
    def form_id(category: TicketCategory | None) -> str:
        return f"{PREFIX_TICKET_MODAL}{category.id}" if category else ID_TICKET_MODAL

    def build_form(self, category: TicketCategory | None, form_id: str | None = None) -> Form:
        form = Form(custom_id=form_id or self.form_id(category), title=TICKET_FORM_TITLE)
        questions = category.questions if category else []
        if not questions:
            form.fields.append(
                TextField(
                    custom_id=FIELD_TICKET_REASON,
                    label=DEFAULT_QUESTION_LABEL,
                    style="long",
                    required=True,
                )
            )
            return form

        if len(questions) > MAX_FORM_FIELDS:
            LOGGER.warning(
                "Category %s declares %d questions; only the first %d are shown",
                category.id if category else None,
                len(questions),
                MAX_FORM_FIELDS,
            )
        for index, question in enumerate(questions[:MAX_FORM_FIELDS]):
            label = (question.label or f"Question {index + 1}")[:MAX_FIELD_LABEL_LENGTH]
            placeholder = question.placeholder[:MAX_FIELD_PLACEHOLDER_LENGTH] if question.placeholder else None
            form.fields.append(
                TextField(
                    custom_id=f"{FIELD_QUESTION_PREFIX}{index}",
                    label=label,
                    style="long" if question.style.lower() in {"long", "paragraph"} else "short",
                    placeholder=placeholder,
                    required=question.required,
                    min_length=question.min_length or 0,
                    max_length=question.max_length or DEFAULT_MAX_ANSWER_LENGTH,
                )
            )
        return form

    @staticmethod
    def extract_description(fields: list[tuple[str, str]]) -> str:
        for field_id, value in fields:
            if field_id == FIELD_TICKET_REASON:
                return value
        return "\n".join(f"**{field_id}**: {value}" for field_id, value in fields)

    @staticmethod
    def render_panel_rows(categories: list[TicketCategory]) -> list[ActionRow]:
        capacity = MAX_BUTTONS_PER_ROW * MAX_COMPONENT_ROWS
        if len(categories) > capacity:
            LOGGER.warning("Panel holds %d categories; only the first %d are rendered", len(categories), capacity)
        rows: list[ActionRow] = []
        visible = categories[:capacity]
        for start in range(0, len(visible), MAX_BUTTONS_PER_ROW):
            chunk = visible[start:start + MAX_BUTTONS_PER_ROW]
            rows.append(
                ActionRow(
                    items=[
                        Button(
                            custom_id=f"{PREFIX_OPEN_CATEGORY}{category.id}",
                            label=category.name[:MAX_BUTTON_LABEL_LENGTH],
                            style="primary",
                            emoji=category.emoji or DEFAULT_CATEGORY_EMOJI,
                        )
                        for category in chunk
                    ]
                )
            )
        return rows
