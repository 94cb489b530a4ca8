"""Discord runtime for activity-weighted giveaways."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable

import boto3
import discord
import discord.abc
from discord import app_commands
from discord.ext import tasks

from bots.config import EnvironmentConfig
from giveaway_bot import (
    ActivityKind,
    ActivityLedger,
    AlreadyEnteredError,
    Giveaway,
    GiveawayAction,
    GiveawayError,
    GiveawayFinished,
    GiveawayRerolled,
    GiveawayService,
    GiveawaySpec,
    GiveawayStillOpenError,
    GiveawayStore,
    InactiveGiveawayError,
    LifecycleScheduler,
    NotEnteredError,
    NotFoundError,
    PersistenceError,
    ValidationError,
    VoiceSessionTracker,
    now_ms,
)
from giveaway_bot.actions import ActionKind

log = logging.getLogger("giveaway-bot")

COLOR_OPEN = 0x00FF00
COLOR_WINNERS = 0xFFFF00
COLOR_NO_WINNERS = 0xFF0000
COLOR_INFO = 0x0099FF

VOICE_FLUSH_MINUTES = 5


def _ensure_messageable_channel(channel: object) -> discord.abc.Messageable | None:
    """Return the channel if it can accept messages, otherwise ``None``."""

    if channel is None:
        return None

    if isinstance(channel, discord.TextChannel):
        return channel

    send = getattr(channel, "send", None)
    if callable(send):
        return channel

    return None


async def _get_text_channel(
    client: discord.Client, channel_id: int
) -> discord.abc.Messageable | None:
    """Resolve a text-capable channel, fetching it if necessary."""

    cached = _ensure_messageable_channel(client.get_channel(channel_id))
    if cached is not None:
        return cached

    try:
        fetched = await client.fetch_channel(channel_id)
    except discord.DiscordException as exc:  # pragma: no cover - network failure
        log.warning("Failed to fetch channel %s: %s", channel_id, exc)
        return None

    return _ensure_messageable_channel(fetched)


def has_admin_permissions(user: discord.abc.User, admin_role_id: int | None) -> bool:
    """Return True for server administrators or holders of the admin role."""

    if not isinstance(user, discord.Member):
        return False
    permissions = getattr(user, "guild_permissions", None)
    if permissions is not None and permissions.administrator:
        return True
    if not admin_role_id:
        return False
    return any(
        getattr(role, "id", None) == admin_role_id for role in getattr(user, "roles", [])
    )


def describe_error(
    exc: GiveawayError, *, inactive: str = "This giveaway is no longer active."
) -> str:
    """Map a core failure onto the reply shown to the user."""

    if isinstance(exc, ValidationError):
        return f"{exc}."
    if isinstance(exc, NotFoundError):
        return "Giveaway not found or not in this server."
    if isinstance(exc, InactiveGiveawayError):
        return inactive
    if isinstance(exc, GiveawayStillOpenError):
        return "Cannot reroll an active giveaway."
    if isinstance(exc, AlreadyEnteredError):
        return "You have already entered this giveaway!"
    if isinstance(exc, NotEnteredError):
        return "You are not entered in this giveaway!"
    if isinstance(exc, PersistenceError):
        return "Could not save that change right now. Please try again."
    return "An error occurred while processing your request."


def _mentions(user_ids: tuple[str, ...] | list[str], sep: str = ", ") -> str:
    return sep.join(f"<@{user_id}>" for user_id in user_ids)


def _relative(ms: int) -> str:
    return f"<t:{ms // 1000}:R>"


def giveaway_embed(giveaway: Giveaway, host_name: str) -> discord.Embed:
    lines = [f"**Prize:** {giveaway.prize}"]
    if giveaway.description:
        lines.append(f"**Description:** {giveaway.description}")
    lines.extend(
        [
            f"**Winners:** {giveaway.winner_count}",
            f"**Requirements:** {giveaway.requirements or 'None'}",
            f"**Ends:** {_relative(giveaway.end_ms)}",
            "**Activity Bonus:** "
            + ("✅ Enabled" if giveaway.activity_bonus_enabled else "❌ Disabled"),
            "",
            "Click the buttons below to enter or leave!",
        ]
    )
    embed = discord.Embed(
        title="🎉 GIVEAWAY 🎉", description="\n".join(lines), color=COLOR_OPEN
    )
    embed.set_footer(text=f"Giveaway ID: {giveaway.giveaway_id} | Hosted by {host_name}")
    return embed


def finished_embed(event: GiveawayFinished) -> discord.Embed:
    prize = event.giveaway.prize
    if not event.winners:
        embed = discord.Embed(
            title="🎉 GIVEAWAY ENDED 🎉",
            description=f"**Prize:** {prize}\n**Winner:** No valid entries\n\n"
            "Better luck next time!",
            color=COLOR_NO_WINNERS,
        )
    else:
        label = "Winners" if len(event.winners) > 1 else "Winner"
        embed = discord.Embed(
            title="🎉 GIVEAWAY ENDED 🎉",
            description=f"**Prize:** {prize}\n**{label}:** {_mentions(event.winners)}"
            "\n\nCongratulations!",
            color=COLOR_WINNERS,
        )
    embed.set_footer(text=f"Giveaway ID: {event.giveaway_id}")
    return embed


def rerolled_embed(event: GiveawayRerolled) -> discord.Embed:
    label = "New Winners" if len(event.winners) > 1 else "New Winner"
    embed = discord.Embed(
        title="🎉 GIVEAWAY REROLLED 🎉",
        description=f"**Prize:** {event.giveaway.prize}\n"
        f"**{label}:** {_mentions(event.winners)}\n\nCongratulations!",
        color=COLOR_WINNERS,
    )
    embed.set_footer(text=f"Giveaway ID: {event.giveaway_id}")
    return embed


def closed_view() -> discord.ui.View:
    view = discord.ui.View()
    view.add_item(
        discord.ui.Button(
            label="Giveaway Ended", style=discord.ButtonStyle.grey, disabled=True
        )
    )
    return view


class GiveawayView(discord.ui.View):
    def __init__(self, service: GiveawayService, giveaway_id: str) -> None:
        super().__init__(timeout=None)
        self.service = service
        self.giveaway_id = giveaway_id

        self.enter.custom_id = GiveawayAction.enter(giveaway_id).custom_id
        self.leave.custom_id = GiveawayAction.leave(giveaway_id).custom_id

    async def _handle(
        self, interaction: discord.Interaction, button: discord.ui.Button
    ) -> None:
        action = GiveawayAction.from_custom_id(button.custom_id)
        if action is None or action.kind not in (ActionKind.ENTER, ActionKind.LEAVE):
            await interaction.response.send_message(
                "This button is no longer valid.", ephemeral=True
            )
            return

        try:
            outcome = await self.service.handle_action(
                action, str(interaction.user.id), str(interaction.guild_id)
            )
        except GiveawayError as exc:
            await interaction.response.send_message(describe_error(exc), ephemeral=True)
            return

        if action.kind is ActionKind.ENTER:
            message = "You have successfully entered the giveaway!"
            if outcome.score is not None:
                message += f" Your activity bonus: {outcome.score:.2f}x"
        else:
            message = "You have successfully left the giveaway!"
        await interaction.response.send_message(message, ephemeral=True)

    @discord.ui.button(label="🎉 Enter Giveaway", style=discord.ButtonStyle.green)
    async def enter(
        self, interaction: discord.Interaction, button: discord.ui.Button
    ) -> None:
        await self._handle(interaction, button)

    @discord.ui.button(label="❌ Leave Giveaway", style=discord.ButtonStyle.red)
    async def leave(
        self, interaction: discord.Interaction, button: discord.ui.Button
    ) -> None:
        await self._handle(interaction, button)


class DiscordAnnouncer:
    """Posts results and disables entry buttons when a giveaway finishes."""

    def __init__(
        self,
        client: discord.Client,
        *,
        admin_role_id: int | None = None,
        winner_channels: bool = True,
    ) -> None:
        self._client = client
        self._admin_role_id = admin_role_id
        self._winner_channels = winner_channels

    async def giveaway_finished(self, event: GiveawayFinished) -> None:
        giveaway = event.giveaway
        channel = await _get_text_channel(self._client, int(giveaway.channel_id))
        if channel is None:
            log.warning(
                "Giveaway channel %s for %s unavailable; results not posted",
                giveaway.channel_id,
                event.giveaway_id,
            )
            return

        await channel.send(embed=finished_embed(event))

        if giveaway.announcement_ref:
            try:
                msg = await channel.fetch_message(int(giveaway.announcement_ref))
                await msg.edit(view=closed_view())
            except discord.DiscordException as exc:
                log.warning(
                    "Failed to disable entry buttons for %s: %s", event.giveaway_id, exc
                )

        guild = getattr(channel, "guild", None)
        if event.winners and self._winner_channels and guild is not None:
            await self._create_winner_channel(guild, event)

    async def giveaway_rerolled(self, event: GiveawayRerolled) -> None:
        if not event.winners:
            return
        channel = await _get_text_channel(self._client, int(event.giveaway.channel_id))
        if channel is None:
            log.warning("Giveaway channel for %s unavailable", event.giveaway_id)
            return
        await channel.send(embed=rerolled_embed(event))

    async def _create_winner_channel(
        self, guild: discord.Guild, event: GiveawayFinished
    ) -> None:
        slug = re.sub(r"\s+", "-", event.giveaway.prize.lower())[:50]
        overwrites: dict = {
            guild.default_role: discord.PermissionOverwrite(view_channel=False),
        }
        if guild.me is not None:
            overwrites[guild.me] = discord.PermissionOverwrite(view_channel=True)
        for winner in event.winners:
            member = guild.get_member(int(winner))
            if member is not None:
                overwrites[member] = discord.PermissionOverwrite(
                    view_channel=True, send_messages=True
                )
        admin_ping = ""
        if self._admin_role_id:
            role = guild.get_role(self._admin_role_id)
            if role is not None:
                overwrites[role] = discord.PermissionOverwrite(view_channel=True)
            admin_ping = f" <@&{self._admin_role_id}>"

        label = "Winners" if len(event.winners) > 1 else "Winner"
        embed = discord.Embed(
            title="🎉 GIVEAWAY WINNERS 🎉",
            description=f"**Prize:** {event.giveaway.prize}\n"
            f"**{label}:** {_mentions(event.winners, ' ')}\n\n"
            "Congratulations! Please contact the admin team to claim your prize.",
            color=COLOR_OPEN,
        )
        embed.set_footer(text=f"Giveaway ID: {event.giveaway_id}")
        try:
            winner_channel = await guild.create_text_channel(
                f"giveaway-{slug}",
                topic=f"Winner channel for giveaway: {event.giveaway.prize}",
                overwrites=overwrites,
            )
            await winner_channel.send(
                content=f"{_mentions(event.winners, ' ')}{admin_ping}", embed=embed
            )
        except discord.DiscordException as exc:
            log.exception(
                "Error creating winner channel for %s: %s", event.giveaway_id, exc
            )


def _counts_for_voice(state: discord.VoiceState) -> bool:
    if state.channel is None or state.afk:
        return False
    # Muted and deafened members are idle.
    return not (state.self_mute and state.self_deaf)


class ActivityRecorder:
    """Feeds chat events into the activity ledger."""

    def __init__(
        self,
        ledger: ActivityLedger,
        tracker: VoiceSessionTracker | None = None,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.ledger = ledger
        self.tracker = tracker or VoiceSessionTracker()
        self._clock = clock

    async def _record(
        self, server_id: str, user_id: str, kind: ActivityKind, amount: int = 1
    ) -> None:
        try:
            await self.ledger.record(server_id, user_id, kind, amount)
        except GiveawayError as exc:
            log.warning("Failed to record %s for %s: %s", kind.value, user_id, exc)

    async def on_message(self, message: discord.Message) -> None:
        if message.guild is None or message.author.bot:
            return
        await self._record(
            str(message.guild.id), str(message.author.id), ActivityKind.MESSAGE
        )

    async def on_reaction_add(
        self, reaction: discord.Reaction, user: discord.abc.User
    ) -> None:
        guild = reaction.message.guild
        if guild is None or user.bot:
            return
        await self._record(str(guild.id), str(user.id), ActivityKind.REACTION)

    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ) -> None:
        if member.bot:
            return
        server_id, user_id = str(member.guild.id), str(member.id)
        was_counted = _counts_for_voice(before)
        is_counted = _counts_for_voice(after)
        now = self._clock()
        if is_counted and not was_counted:
            self.tracker.join(server_id, user_id, now)
        elif was_counted and not is_counted:
            minutes = self.tracker.leave(server_id, user_id, now)
            if minutes:
                await self._record(server_id, user_id, ActivityKind.VOICE_MINUTE, minutes)

    async def flush_voice(self) -> None:
        for server_id, user_id, minutes in self.tracker.flush(self._clock()):
            await self._record(server_id, user_id, ActivityKind.VOICE_MINUTE, minutes)


def register_commands(
    tree: app_commands.CommandTree,
    runtime: GiveawayRuntime,
    *,
    guild: discord.abc.Snowflake | None = None,
) -> None:
    """Attach the giveaway slash commands to ``tree``."""

    scope = {"guild": guild} if guild is not None else {}
    service = runtime.service

    async def deny_non_admin(interaction: discord.Interaction) -> bool:
        if has_admin_permissions(interaction.user, runtime.admin_role_id):
            return False
        await interaction.response.send_message(
            "You need administrator permissions or the admin role to use this command.",
            ephemeral=True,
        )
        return True

    @tree.command(name="giveaway", description="Create a new giveaway", **scope)
    @app_commands.describe(
        prize="The prize for the giveaway",
        duration="Duration in minutes",
        winners="Number of winners",
        channel="Channel to host the giveaway",
        requirements="Entry requirements",
        description="Additional description",
        activity_bonus="Enable activity-based bonus (default: true)",
    )
    async def giveaway_cmd(
        interaction: discord.Interaction,
        prize: str,
        duration: int,
        winners: int,
        channel: discord.TextChannel | None = None,
        requirements: str | None = None,
        description: str | None = None,
        activity_bonus: bool = True,
    ) -> None:
        if await deny_non_admin(interaction):
            return
        target = channel or interaction.channel
        if target is None or interaction.guild_id is None:
            await interaction.response.send_message(
                "Giveaways can only be created in a server channel.", ephemeral=True
            )
            return

        await interaction.response.defer(ephemeral=True)
        spec = GiveawaySpec(
            prize=prize,
            duration_minutes=duration,
            winner_count=winners,
            host_user_id=str(interaction.user.id),
            requirements=requirements,
            description=description,
            activity_bonus_enabled=activity_bonus,
        )
        try:
            giveaway = await service.create_giveaway(
                str(interaction.guild_id), str(target.id), spec
            )
        except GiveawayError as exc:
            await interaction.followup.send(describe_error(exc), ephemeral=True)
            return

        await runtime.post_giveaway(giveaway, target, str(interaction.user))
        await interaction.followup.send(
            f"Giveaway created successfully in {target.mention}!", ephemeral=True
        )

    @tree.command(name="gend", description="End a giveaway early", **scope)
    @app_commands.describe(giveaway_id="The ID of the giveaway to end")
    async def gend_cmd(interaction: discord.Interaction, giveaway_id: str) -> None:
        if await deny_non_admin(interaction):
            return
        await interaction.response.defer(ephemeral=True)
        try:
            await service.handle_action(
                GiveawayAction.end(giveaway_id.strip()),
                str(interaction.user.id),
                str(interaction.guild_id),
            )
        except GiveawayError as exc:
            await interaction.followup.send(
                describe_error(exc, inactive="This giveaway has already ended."),
                ephemeral=True,
            )
            return
        await interaction.followup.send("Giveaway ended successfully!", ephemeral=True)

    @tree.command(name="greroll", description="Reroll a giveaway", **scope)
    @app_commands.describe(
        giveaway_id="The ID of the giveaway to reroll",
        winners="Number of winners to reroll",
    )
    async def greroll_cmd(
        interaction: discord.Interaction, giveaway_id: str, winners: int = 1
    ) -> None:
        if await deny_non_admin(interaction):
            return
        try:
            outcome = await service.handle_action(
                GiveawayAction.reroll(giveaway_id.strip(), winners),
                str(interaction.user.id),
                str(interaction.guild_id),
            )
        except GiveawayError as exc:
            await interaction.response.send_message(describe_error(exc), ephemeral=True)
            return
        if outcome.rerolled is None or not outcome.rerolled.winners:
            await interaction.response.send_message(
                "No valid entries to reroll.", ephemeral=True
            )
            return
        await interaction.response.send_message(
            f"Rerolled! New winners: {_mentions(outcome.rerolled.winners)}",
            ephemeral=True,
        )

    @tree.command(name="glist", description="List active giveaways", **scope)
    async def glist_cmd(interaction: discord.Interaction) -> None:
        active = service.list_active(str(interaction.guild_id))
        if not active:
            await interaction.response.send_message(
                "No active giveaways in this server.", ephemeral=True
            )
            return
        embed = discord.Embed(
            title="Active Giveaways",
            color=COLOR_OPEN,
            description="\n".join(
                f"**{g.prize}** (ID: {g.giveaway_id})\n"
                f"Ends: {_relative(g.end_ms)}\nEntries: {len(g.entries)}\n"
                for g in active
            ),
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @tree.command(name="gactivity", description="View activity stats", **scope)
    @app_commands.describe(user="User to check activity for")
    async def gactivity_cmd(
        interaction: discord.Interaction, user: discord.User | None = None
    ) -> None:
        target = user or interaction.user
        server_id = str(interaction.guild_id)
        record = service.get_activity(server_id, str(target.id))
        score = service.get_activity_score(server_id, str(target.id))
        embed = discord.Embed(title=f"Activity Stats for {target}", color=COLOR_INFO)
        embed.add_field(name="Messages", value=str(record.message_count), inline=True)
        embed.add_field(name="Reactions", value=str(record.reaction_count), inline=True)
        embed.add_field(
            name="Voice Minutes", value=str(record.voice_minutes), inline=True
        )
        embed.add_field(name="Activity Multiplier", value=f"{score:.2f}x", inline=True)
        embed.set_thumbnail(url=target.display_avatar.url)
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @tree.command(name="gconfig", description="Configure giveaway settings", **scope)
    @app_commands.describe(
        activity_multiplier="Activity bonus multiplier (default: 1.5)",
        max_activity_bonus="Maximum activity bonus (default: 5.0)",
        message_points="Points per message (default: 1)",
        reaction_points="Points per reaction (default: 0.5)",
        voice_minute_points="Points per voice minute (default: 2)",
        decay_days="Activity decay period in days (default: 30)",
    )
    async def gconfig_cmd(
        interaction: discord.Interaction,
        activity_multiplier: float | None = None,
        max_activity_bonus: float | None = None,
        message_points: float | None = None,
        reaction_points: float | None = None,
        voice_minute_points: float | None = None,
        decay_days: float | None = None,
    ) -> None:
        if await deny_non_admin(interaction):
            return
        try:
            config = await service.update_config(
                activity_multiplier=activity_multiplier,
                max_activity_bonus=max_activity_bonus,
                message_point_value=message_points,
                reaction_point_value=reaction_points,
                voice_minute_value=voice_minute_points,
                activity_decay_days=decay_days,
            )
        except GiveawayError as exc:
            await interaction.response.send_message(describe_error(exc), ephemeral=True)
            return
        embed = discord.Embed(title="Configuration Updated", color=COLOR_OPEN)
        for name, value in config.as_dict().items():
            embed.add_field(
                name=name.replace("_", " ").title(), value=f"{value:g}", inline=True
            )
        await interaction.response.send_message(embed=embed, ephemeral=True)


class GiveawayRuntime:
    def __init__(self, config: EnvironmentConfig, *, table=None) -> None:
        intents = discord.Intents.default()
        intents.guilds = True
        intents.members = True
        intents.voice_states = True

        self.config = config
        self.admin_role_id = config.admin_role_id
        self.bot = discord.Client(intents=intents)
        self.tree = app_commands.CommandTree(self.bot)
        if table is None:
            dynamodb = boto3.resource("dynamodb", region_name=config.aws_region)
            table = dynamodb.Table(config.giveaway_table_name)
        self.table = table

        self.store = GiveawayStore(table)
        self.ledger = ActivityLedger(table)
        self.announcer = DiscordAnnouncer(
            self.bot,
            admin_role_id=config.admin_role_id,
            winner_channels=config.winner_channels,
        )
        self.scheduler = LifecycleScheduler(
            self.store,
            self.ledger,
            self.announcer,
            interval_seconds=config.sweep_seconds,
        )
        self.service = GiveawayService(self.store, self.ledger, self.scheduler)
        self.activity = ActivityRecorder(self.ledger)
        self.voice_flush = tasks.loop(minutes=VOICE_FLUSH_MINUTES)(
            self.activity.flush_voice
        )
        self._ready = False
        self._guild = (
            discord.Object(id=config.guild_id) if config.guild_id is not None else None
        )

    async def post_giveaway(
        self, giveaway: Giveaway, channel: discord.abc.Messageable, host_name: str
    ) -> None:
        view = GiveawayView(self.service, giveaway.giveaway_id)
        try:
            msg = await channel.send(embed=giveaway_embed(giveaway, host_name), view=view)
        except discord.DiscordException as exc:
            log.exception("Failed to post giveaway %s: %s", giveaway.giveaway_id, exc)
            return
        # Register the view so the buttons survive bot restarts
        self.bot.add_view(view, message_id=msg.id)
        try:
            await self.store.set_announcement_ref(giveaway.giveaway_id, str(msg.id))
        except GiveawayError as exc:
            log.warning(
                "Giveaway %s posted but message ref not saved: %s",
                giveaway.giveaway_id,
                exc,
            )

    def restore_persistent_views(self) -> int:
        """Register entry buttons for open giveaways posted before a restart."""
        restored = 0
        for giveaway in self.store.list_open():
            if not giveaway.announcement_ref:
                continue
            try:
                self.bot.add_view(
                    GiveawayView(self.service, giveaway.giveaway_id),
                    message_id=int(giveaway.announcement_ref),
                )
                restored += 1
            except (ValueError, TypeError) as exc:
                log.warning(
                    "Failed to restore view for %s: %s", giveaway.giveaway_id, exc
                )
        if restored:
            log.info("Restored %s persistent giveaway views", restored)
        return restored

    async def on_ready(self) -> None:
        if self._ready:
            return
        try:
            await self.service.load()
        except GiveawayError as exc:
            # Left un-ready so the next on_ready retries the load.
            log.exception("Failed to load giveaway state: %s", exc)
            return
        self._ready = True
        self.restore_persistent_views()
        # Catch up on giveaways that expired while offline before the timer runs.
        await self.scheduler.sweep()
        self.scheduler.start()
        if not self.voice_flush.is_running():
            self.voice_flush.start()
        try:
            await self.tree.sync(guild=self._guild)
        except discord.DiscordException as exc:
            log.exception("Failed to sync giveaway commands: %s", exc)
        log.info("Giveaway bot ready as %s", self.bot.user)

    def register_events(self) -> None:
        runtime = self

        @self.bot.event
        async def on_ready() -> None:
            await runtime.on_ready()

        @self.bot.event
        async def on_message(message: discord.Message) -> None:
            await runtime.activity.on_message(message)

        @self.bot.event
        async def on_reaction_add(
            reaction: discord.Reaction, user: discord.abc.User
        ) -> None:
            await runtime.activity.on_reaction_add(reaction, user)

        @self.bot.event
        async def on_voice_state_update(
            member: discord.Member,
            before: discord.VoiceState,
            after: discord.VoiceState,
        ) -> None:
            await runtime.activity.on_voice_state_update(member, before, after)

    async def run(self) -> None:
        register_commands(self.tree, self, guild=self._guild)
        self.register_events()
        async with self.bot:
            await self.bot.start(self.config.discord_token)

    @classmethod
    def create(cls) -> GiveawayRuntime:
        return cls(EnvironmentConfig.load())


async def main() -> None:
    logging.basicConfig(level=logging.INFO)
    runtime = GiveawayRuntime.create()
    await runtime.run()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()


__all__ = [
    "ActivityRecorder",
    "DiscordAnnouncer",
    "GiveawayRuntime",
    "GiveawayView",
    "describe_error",
    "has_admin_permissions",
    "main",
    "register_commands",
    "run",
]
