"""Luau execution flow: script prompt, confirmation, task creation and polling."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterable

import discord

from perseus.clients.errors import GatewayError
from perseus.clients.models import ExecutionTask

from . import render
from .views import is_elevated

if TYPE_CHECKING:
    from perseus.clients.roblox import GatewayClient

logger = logging.getLogger(__name__)


class ScriptModal(discord.ui.Modal, title="Execute Luau Script"):
    script_input: discord.ui.TextInput = discord.ui.TextInput(
        label="Luau Script",
        style=discord.TextStyle.paragraph,
        placeholder="print('Hello World')",
        required=True,
    )

    def __init__(self, *, timeout: float = 300) -> None:
        super().__init__(timeout=timeout)
        self.submission: discord.Interaction | None = None

    @property
    def script(self) -> str:
        return self.script_input.value

    async def on_submit(self, interaction: discord.Interaction) -> None:
        self.submission = interaction
        await interaction.response.defer(thinking=True)


class ConfirmExecutionView(discord.ui.View):
    """Confirm / Cancel prompt. ``confirmed`` stays ``None`` on timeout."""

    def __init__(self, initiator_id: int, *, timeout: float = 30, elevated_role_ids: Iterable[int] = ()) -> None:
        super().__init__(timeout=timeout)
        self.initiator_id = initiator_id
        self.elevated_role_ids = frozenset(elevated_role_ids)
        self.confirmed: bool | None = None

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if interaction.user.id == self.initiator_id or is_elevated(interaction, self.elevated_role_ids):
            return True
        await interaction.response.send_message("Not authorized.", ephemeral=True)
        return False

    @discord.ui.button(label="Confirm", style=discord.ButtonStyle.success)
    async def confirm(self, interaction: discord.Interaction, button: discord.ui.Button) -> None:
        self.confirmed = True
        await interaction.response.edit_message(content="⏳ Creating task...", view=None)
        self.stop()

    @discord.ui.button(label="Cancel", style=discord.ButtonStyle.danger)
    async def cancel(self, interaction: discord.Interaction, button: discord.ui.Button) -> None:
        self.confirmed = False
        await interaction.response.edit_message(content="❌ Execution Cancelled.", embed=None, view=None)
        self.stop()


class InteractionReporter:
    """Delivers poll outcomes to the reply that announced the task."""

    def __init__(self, interaction: discord.Interaction) -> None:
        self.interaction = interaction

    async def task_finished(self, task: ExecutionTask, logs: str) -> None:
        await self.interaction.edit_original_response(content=None, embed=render.task_result(task, logs), view=None)

    async def task_still_running(self, task: ExecutionTask) -> None:
        await self.interaction.followup.send(render.STILL_RUNNING_NOTICE, ephemeral=True)


class ExecutionFlow:
    """One ``/execute`` run from prompt to spawned poller."""

    def __init__(
        self,
        gateway: "GatewayClient",
        *,
        place_key: str,
        version: int | None = None,
        settings: Any = None,
        elevated_role_ids: Iterable[int] = (),
    ) -> None:
        self.gateway = gateway
        self.place_key = place_key
        self.version = version
        self.script_timeout = getattr(settings, "SCRIPT_TIMEOUT", 300)
        self.confirm_timeout = getattr(settings, "CONFIRM_TIMEOUT", 30)
        self.preview_length = getattr(settings, "PREVIEW_LENGTH", render.PREVIEW_LIMIT)
        self.elevated_role_ids = tuple(elevated_role_ids)
        self.confirm_view: ConfirmExecutionView | None = None

    async def run(self, interaction: discord.Interaction) -> ExecutionTask | None:
        modal = ScriptModal(timeout=self.script_timeout)
        await interaction.response.send_modal(modal)
        if await modal.wait() or modal.submission is None:
            logger.debug("Script prompt for place %s closed without submission", self.place_key)
            return None
        return await self.submit(modal.submission, modal.script, initiator_id=interaction.user.id)

    async def submit(self, submission: discord.Interaction, script: str, *, initiator_id: int) -> ExecutionTask | None:
        """Everything after the script was entered. ``submission`` is already deferred."""

        try:
            universe_id = await self.gateway.resolve_identifier(self.place_key)
        except GatewayError as exc:
            logger.warning("Could not resolve place %s: %s", self.place_key, exc)
            await submission.edit_original_response(content=render.describe_error(exc))
            return None

        self.confirm_view = view = ConfirmExecutionView(
            initiator_id, timeout=self.confirm_timeout, elevated_role_ids=self.elevated_role_ids
        )
        embed = render.confirm_execution(
            self.place_key, universe_id, script, version=self.version, preview_limit=self.preview_length
        )
        await submission.edit_original_response(embed=embed, view=view)

        if await view.wait() or view.confirmed is None:
            await submission.edit_original_response(
                content="⚠️ Confirmation timed out. Execution Cancelled.", embed=None, view=None
            )
            return None
        if not view.confirmed:
            return None

        try:
            task = await self.gateway.create_execution_task(universe_id, self.place_key, script, self.version)
        except GatewayError as exc:
            logger.warning("Task creation for place %s failed: %s", self.place_key, exc)
            await submission.edit_original_response(content=render.describe_error(exc), embed=None, view=None)
            return None

        await submission.edit_original_response(content=None, embed=render.task_created(task), view=None)
        self.gateway.spawn_poller(task, InteractionReporter(submission))
        return task


__all__ = ["ScriptModal", "ConfirmExecutionView", "InteractionReporter", "ExecutionFlow"]
