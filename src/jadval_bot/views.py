"""Discord UI views and the persistent button handler."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

import discord
from discord.ui import Button, DynamicItem, View

from jadval_bot.ui import MAX_BUTTONS, ButtonConfig, ButtonStyle

if TYPE_CHECKING:
    from jadval_bot.machine import ConversationMachine

# Buttons are reconstructed from custom_id on restart; module-level ref
# is the only way to reach the machine from DynamicItem.
_machine: ConversationMachine | None = None


def init(machine: ConversationMachine) -> None:
    """Must be called before any button interaction is processed."""
    global _machine
    _machine = machine


STYLE_MAP: dict[ButtonStyle, discord.ButtonStyle] = {
    "primary": discord.ButtonStyle.primary,
    "secondary": discord.ButtonStyle.secondary,
    "success": discord.ButtonStyle.success,
    "danger": discord.ButtonStyle.danger,
}


def custom_id_for(action: str) -> str:
    """``today`` -> ``act:today:_``; ``add_day:Juma`` -> ``act:add_day:Juma``."""
    return f"act:{action}" if ":" in action else f"act:{action}:_"


def build_view(buttons: tuple[ButtonConfig, ...]) -> View | None:
    """Returns None when empty; caps at 25 buttons (Discord limit)."""
    if not buttons:
        return None
    view = View(timeout=None)
    for btn in buttons[:MAX_BUTTONS]:
        view.add_item(
            Button(label=btn.label, style=STYLE_MAP[btn.style], custom_id=custom_id_for(btn.action)),
        )
    return view


CUSTOM_ID_TEMPLATE = r"act:(?P<action>[a-z_]+):(?P<data>.+)"


class ActionButton(DynamicItem[Button], template=CUSTOM_ID_TEMPLATE):
    def __init__(self, button: Button):
        super().__init__(button)
        self.action: str = ""
        self.data: str = ""

    @classmethod
    async def from_custom_id(
        cls,
        interaction: discord.Interaction,
        item: Button,
        match: re.Match[str],
    ) -> ActionButton:
        inst = cls(item)
        inst.action = match.group("action")
        inst.data = match.group("data")
        return inst

    async def callback(self, interaction: discord.Interaction) -> None:
        from jadval_bot.transport import Inbound

        if _machine is None:
            await interaction.response.send_message("still starting up, try again shortly.", ephemeral=True)
            return
        await interaction.response.defer()
        data = "" if self.data == "_" else self.data
        await _machine.handle(Inbound(user_id=interaction.user.id, action=self.action, data=data))
