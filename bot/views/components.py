from __future__ import annotations

import discord

from core.components import ActionRow, Button, Form, Select


def _button_style_from_name(style_name: str) -> discord.ButtonStyle:
    mapping = {
        "primary": discord.ButtonStyle.primary,
        "secondary": discord.ButtonStyle.secondary,
        "success": discord.ButtonStyle.success,
        "danger": discord.ButtonStyle.danger,
    }
    return mapping.get(style_name.lower(), discord.ButtonStyle.primary)


def _text_style_from_name(style_name: str) -> discord.TextStyle:
    if style_name.lower() in {"long", "paragraph"}:
        return discord.TextStyle.long
    return discord.TextStyle.short


class RoutedView(discord.ui.View):
    """Static component layout. Clicks are handled by the interaction router,
    so the items carry no callbacks and the view is stopped once sent."""

    def __init__(self, rows: list[ActionRow]) -> None:
        super().__init__(timeout=None)
        for index, row in enumerate(rows):
            for item in row.items:
                if isinstance(item, Button):
                    self.add_item(
                        discord.ui.Button(
                            custom_id=item.custom_id,
                            label=item.label,
                            style=_button_style_from_name(item.style),
                            emoji=item.emoji,
                            row=index,
                        )
                    )
                elif isinstance(item, Select):
                    self.add_item(
                        discord.ui.Select(
                            custom_id=item.custom_id,
                            placeholder=item.placeholder,
                            min_values=item.min_values,
                            max_values=item.max_values,
                            options=[
                                discord.SelectOption(label=opt.label, value=opt.value, description=opt.description)
                                for opt in item.options
                            ],
                            row=index,
                        )
                    )


class RoutedModal(discord.ui.Modal):
    def __init__(self, form: Form) -> None:
        super().__init__(title=form.title, custom_id=form.custom_id, timeout=None)
        for text_field in form.fields:
            self.add_item(
                discord.ui.TextInput(
                    custom_id=text_field.custom_id,
                    label=text_field.label,
                    style=_text_style_from_name(text_field.style),
                    placeholder=text_field.placeholder,
                    required=text_field.required,
                    min_length=text_field.min_length,
                    max_length=text_field.max_length,
                )
            )


def build_view(rows: list[ActionRow] | None) -> discord.ui.View | None:
    if not rows:
        return None
    return RoutedView(rows)
