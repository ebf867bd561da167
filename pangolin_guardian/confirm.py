"""
Confirm/cancel dialogs for destructive commands.

A ``Confirmation`` only moves once, from PENDING to one of CONFIRMED,
CANCELLED or TIMED_OUT. ``ConfirmView`` is the Discord side of it.
"""

import asyncio
import logging
import uuid
from enum import Enum
from typing import Optional

import discord

logger = logging.getLogger(__name__)

CONFIRM_TIMEOUT = 60


class ConfirmState(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"


class Confirmation:
    def __init__(self, user_id: int, correlation_id: Optional[str] = None):
        self.user_id = user_id
        self.correlation_id = correlation_id or uuid.uuid4().hex
        self.state = ConfirmState.PENDING
        self._done = asyncio.Event()

    def _transition(self, state: ConfirmState) -> bool:
        if self.state is not ConfirmState.PENDING:
            return False
        self.state = state
        self._done.set()
        return True

    def confirm(self, user_id: int) -> bool:
        return user_id == self.user_id and self._transition(ConfirmState.CONFIRMED)

    def cancel(self, user_id: int) -> bool:
        return user_id == self.user_id and self._transition(ConfirmState.CANCELLED)

    def expire(self) -> bool:
        return self._transition(ConfirmState.TIMED_OUT)

    async def wait(self, timeout: float = CONFIRM_TIMEOUT) -> ConfirmState:
        try:
            await asyncio.wait_for(self._done.wait(), timeout)
        except asyncio.TimeoutError:
            self.expire()
        return self.state


class ConfirmView(discord.ui.View):
    def __init__(self, confirmation: Confirmation, timeout: float = CONFIRM_TIMEOUT):
        super().__init__(timeout=timeout)
        self.confirmation = confirmation

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if interaction.user.id != self.confirmation.user_id:
            await interaction.response.send_message(
                "❌ Only the person who ran this command can answer it.", ephemeral=True
            )
            return False
        return True

    async def _finish(self, interaction: discord.Interaction):
        self.disable_all_items()
        await interaction.response.edit_message(view=self)
        self.stop()

    @discord.ui.button(label="Confirm", style=discord.ButtonStyle.danger, emoji="✅")
    async def confirm_button(self, button: discord.ui.Button, interaction: discord.Interaction):
        self.confirmation.confirm(interaction.user.id)
        await self._finish(interaction)

    @discord.ui.button(label="Cancel", style=discord.ButtonStyle.secondary, emoji="✖️")
    async def cancel_button(self, button: discord.ui.Button, interaction: discord.Interaction):
        self.confirmation.cancel(interaction.user.id)
        await self._finish(interaction)

    async def on_timeout(self):
        self.confirmation.expire()
        self.disable_all_items()
        if self.message is not None:
            try:
                await self.message.edit(view=self)
            except discord.HTTPException as exc:
                logger.debug("Could not disable expired confirmation: %s", exc)


async def ask(ctx: discord.ApplicationContext, embed: discord.Embed, timeout: float = CONFIRM_TIMEOUT) -> ConfirmState:
    """Show ``embed`` with Confirm/Cancel buttons and wait for the invoking user."""
    confirmation = Confirmation(ctx.author.id)
    view = ConfirmView(confirmation, timeout=timeout)
    await ctx.respond(embed=embed, view=view)
    state = await confirmation.wait(timeout)
    view.stop()
    logger.info("Confirmation %s for %s: %s", confirmation.correlation_id, ctx.author.id, state.value)
    return state
