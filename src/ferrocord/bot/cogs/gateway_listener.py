"""Gateway listener Cog for Ferrocord.

Feeds every command-like gateway event (prefix messages, interactions and
mapped reactions) through the event normalizer into the invocation intake,
and hands member joins to the delayed role grant. The cog never runs
commands itself.
"""

from typing import Optional

import discord
from discord.ext import commands

from ferrocord.bot.onboarding import JoinRoleGrant
from ferrocord.dispatch.intake import InvocationIntake
from ferrocord.dispatch.normalizer import normalize_interaction, normalize_message, normalize_reaction
from ferrocord.util.logger import get_logger

logger = get_logger("gateway_listener_cog")


class GatewayListenerCog(commands.Cog):
    """Cog that turns gateway events into queued invocations."""

    def __init__(self, discord_bot_instance, intake: InvocationIntake, config, onboarding: Optional[JoinRoleGrant] = None):
        """Initialize the gateway listener cog.

        Parameters
        ----------
        discord_bot_instance:
            The Discord bot instance to attach this cog to.
        intake:
            Queue in front of the dispatcher.
        config:
            Application configuration (prefixes, reaction mapping).
        onboarding:
            Delayed opt-in role grant for new members, or None when disabled.
        """
        self.bot = discord_bot_instance
        self.intake = intake
        self.config = config
        self.onboarding = onboarding
        logger.info("Gateway listener cog loaded")

    @commands.Cog.listener(name="on_ready")
    async def on_ready(self):
        """Log the connection and set the bot's presence."""
        if self.bot.user:
            logger.info("Bot connected as %s (ID: %s)", self.bot.user, self.bot.user.id)
        else:
            logger.warning("Bot partially connected, but user information not yet available.")

        prefix = self.config.command_prefixes[0]
        await self.bot.change_presence(
            status=discord.Status.online,
            activity=discord.Activity(type=discord.ActivityType.listening, name=f"{prefix}help"),
        )
        logger.info("--==--==--==--==--==--==--==--==--==--==--==--==--==--==--==--==--")

    @commands.Cog.listener(name="on_message")
    async def on_message(self, message: discord.Message):
        invocation = normalize_message(message, self.config.command_prefixes)
        if invocation is None:
            return
        queued = self.intake.submit(invocation)
        logger.debug("[GATEWAY] Queued prefix command %r as #%d", queued.command, queued.sequence)

    @commands.Cog.listener(name="on_interaction")
    async def on_interaction(self, interaction: discord.Interaction):
        invocation = normalize_interaction(interaction)
        if invocation is None:
            return
        # Acknowledge within Discord's 3 second window; the reply comes as a followup
        try:
            await interaction.response.defer()
        except (discord.HTTPException, discord.InteractionResponded) as exc:
            logger.warning("[GATEWAY] Could not defer interaction %r: %s", invocation.command, exc)
        queued = self.intake.submit(invocation)
        logger.debug("[GATEWAY] Queued interaction %r as #%d", queued.command, queued.sequence)

    @commands.Cog.listener(name="on_raw_reaction_add")
    async def on_raw_reaction_add(self, payload: discord.RawReactionActionEvent):
        if self.bot.user and payload.user_id == self.bot.user.id:
            return
        invocation = normalize_reaction(payload, self.config.reaction_commands)
        if invocation is None:
            return
        queued = self.intake.submit(invocation)
        logger.debug("[GATEWAY] Queued reaction command %r as #%d", queued.command, queued.sequence)

    @commands.Cog.listener(name="on_member_join")
    async def on_member_join(self, member: discord.Member):
        if self.onboarding is None:
            return
        self.onboarding.schedule(member.guild.id, member.id, is_bot=member.bot)


def setup(discord_bot_instance):
    """Register the GatewayListenerCog with the bot.

    The runtime (intake, config and join grant) must already be attached to the bot as
    ``discord_bot_instance.runtime`` by ``main``.
    """
    runtime = discord_bot_instance.runtime
    discord_bot_instance.add_cog(
        GatewayListenerCog(discord_bot_instance, runtime.intake, runtime.config, runtime.onboarding)
    )
