"""Discord bot wiring: builds the core services and feeds DM events into the machine."""

from __future__ import annotations

import discord
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from discord import app_commands
from discord.ext import commands

from jadval_bot import views
from jadval_bot.config import Config
from jadval_bot.errors import FetchError
from jadval_bot.machine import ConversationMachine
from jadval_bot.messenger import Messenger
from jadval_bot.reminders import ReminderScheduler
from jadval_bot.schedule.store import JsonSchedulePersistence, ScheduleStore
from jadval_bot.transport import DiscordTransport, Inbound, InboundAttachment
from jadval_bot.users import UserRegistry
from jadval_bot.views import ActionButton


def _attachment(att: discord.Attachment, *, is_voice: bool) -> InboundAttachment:
    async def read() -> bytes:
        try:
            return await att.read()
        except discord.HTTPException as e:
            raise FetchError(f"could not download {att.filename}: HTTP {e.status}") from e

    return InboundAttachment(
        filename=att.filename,
        size=att.size,
        content_type=att.content_type,
        read=read,
        is_voice=is_voice,
    )


def to_inbound(message: discord.Message) -> Inbound:
    is_voice = message.flags.voice
    return Inbound(
        user_id=message.author.id,
        text=message.content or "",
        attachments=tuple(_attachment(a, is_voice=is_voice) for a in message.attachments),
    )


def create_bot(config: Config) -> commands.Bot:
    intents = discord.Intents.default()
    intents.message_content = True

    bot = commands.Bot(
        command_prefix="!",
        intents=intents,
        status=discord.Status.online,
        activity=discord.Activity(type=discord.ActivityType.watching, name="the timetable"),
    )

    store = ScheduleStore(
        JsonSchedulePersistence(config.data_dir / "schedule.json", config.data_dir / "backups")
    )
    registry = UserRegistry(config.data_dir / "users.json")
    messenger = Messenger(DiscordTransport(bot), registry, config.admin_ids)
    reminders = ReminderScheduler(
        AsyncIOScheduler(timezone=config.timezone), store, registry, messenger, config.timezone
    )
    messenger.on_forget(reminders.cancel)
    machine = ConversationMachine(config, store, registry, reminders, messenger)
    views.init(machine)
    _ready_fired = False

    @bot.tree.command(name="menu", description="Show the main menu")
    async def slash_menu(interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True)
        await machine.handle(Inbound(user_id=interaction.user.id, action="menu"))
        await interaction.delete_original_response()

    @bot.event
    async def on_ready():
        nonlocal _ready_fired
        print(f"jadval-bot online as {bot.user}")

        # on_ready fires again on every reconnect; init must only happen once
        if _ready_fired:
            return
        _ready_fired = True

        bot.add_dynamic_items(ActionButton)

        bot.tree.allowed_installs = app_commands.AppInstallationType(guild=False, user=True)
        bot.tree.allowed_contexts = app_commands.AppCommandContext(
            guild=False, dm_channel=True, private_channel=True
        )
        synced = await bot.tree.sync()
        print(f"synced {len(synced)} slash commands")

        reminders.scheduler.start()
        restored = reminders.restore()
        print(f"scheduler started: {restored} reminders for {len(registry)} users")

        await messenger.notify_admins("\N{WHITE HEAVY CHECK MARK} bot is online.")

    @bot.event
    async def on_message(message: discord.Message):
        if message.author.bot:
            return
        if not isinstance(message.channel, discord.DMChannel):
            return
        await machine.handle(to_inbound(message))

    return bot
