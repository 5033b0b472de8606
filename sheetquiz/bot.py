import discord
from discord import app_commands
from discord.ext import commands
import logging
import asyncio
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple
import os
from datetime import datetime

from .bookmark_store import BookmarkStore, JsonFileStore
from .config_manager import ConfigManager
from .data_manager import DataManager, LoadError
from .models import Phase, QuizMode, QuizSession
from .quiz_controller import (
    ALL_QUESTIONS,
    CatalogNotReadyError,
    QuizController,
    QuizControllerError,
    QuizEvent,
)
from .quiz_engine import AsyncioScheduler, QuizEngine, Scheduler, progress_percentage, timer_color

logger = logging.getLogger(__name__)

OPTION_LABELS = ("A", "B", "C", "D")
TICK_RENDER_INTERVAL = 5  # seconds between countdown edits, every second near the end
BUTTON_LABEL_LIMIT = 80
FIELD_VALUE_LIMIT = 1024
AUTOCOMPLETE_LIMIT = 25
BOOKMARK_LIST_LIMIT = 10


def should_render_tick(seconds_remaining: int) -> bool:
    """Countdown edits are throttled to stay inside Discord rate limits."""
    return seconds_remaining <= TICK_RENDER_INTERVAL or seconds_remaining % TICK_RENDER_INTERVAL == 0


def _truncate(text: str, limit: int = FIELD_VALUE_LIMIT) -> str:
    if len(text) <= limit:
        return text
    return text[:limit - 1] + "…"


def describe_session(session: QuizSession) -> str:
    if session.mode is QuizMode.MIXED:
        return f"Mixed Quiz · Level {session.level}"
    return f"{session.subject} · {session.topic}"


def build_question_embed(session: QuizSession, bookmarked: bool = False) -> discord.Embed:
    """Question card with options, countdown and score."""
    question = session.current_question
    remaining = session.seconds_remaining

    embed = discord.Embed(
        title=f"🎯 Question {session.index + 1}/{session.total_questions}",
        description=question.text,
        color=timer_color(remaining)
    )
    embed.add_field(
        name="📝 Options",
        value=_truncate("\n".join(
            f"**{label}.** {option}" for label, option in zip(OPTION_LABELS, question.options)
        )),
        inline=False
    )

    timer_emoji = "⏱️" if remaining > 10 else "⚠️" if remaining > 5 else "🚨"
    embed.add_field(
        name=f"{timer_emoji} Time Remaining",
        value=f"{remaining} second{'s' if remaining != 1 else ''}",
        inline=True
    )
    embed.add_field(name="📊 Score", value=f"{session.score}/{session.total_questions}", inline=True)
    embed.add_field(name="📚 Quiz", value=describe_session(session), inline=True)

    if session.skip_pending:
        embed.set_footer(text="Skip this question? It will not be scored.")
    else:
        footer = f"{progress_percentage(session)}% complete"
        if bookmarked:
            footer += " · ★ Bookmarked"
        embed.set_footer(text=footer)
    return embed


def build_feedback_embed(session: QuizSession, bookmarked: bool = False, auto_advance_ms: int = 3000) -> discord.Embed:
    """Answer reveal shown between questions."""
    question = session.current_question

    if session.user_answer is None:
        title, color = "⏰ Time's Up!", 0xef4444
    elif session.user_answer == question.correct_answer:
        title, color = "✅ Correct!", 0x22c55e
    else:
        title, color = "❌ Incorrect", 0xef4444

    embed = discord.Embed(
        title=f"{title} - Question {session.index + 1}/{session.total_questions}",
        description=question.text,
        color=color
    )
    if session.user_answer is not None:
        embed.add_field(name="🙋 Your Answer", value=_truncate(session.user_answer), inline=False)
    embed.add_field(name="✅ Correct Answer", value=_truncate(f"**{question.correct_answer}**"), inline=False)
    if question.explanation:
        embed.add_field(name="💡 Explanation", value=_truncate(question.explanation), inline=False)
    embed.add_field(name="📊 Score", value=f"{session.score}/{session.total_questions}", inline=True)
    embed.add_field(name="📚 Quiz", value=describe_session(session), inline=True)

    seconds = auto_advance_ms / 1000
    if session.index + 1 >= session.total_questions:
        footer = f"Results in {seconds:g} seconds..."
    else:
        footer = f"Next question in {seconds:g} seconds..."
    if bookmarked:
        footer += " · ★ Bookmarked"
    embed.set_footer(text=footer)
    return embed


def build_results_embed(session: QuizSession, engine: QuizEngine) -> discord.Embed:
    """Results card for a completed session."""
    successful = session.passed if session.mode is QuizMode.MIXED else session.score >= session.total_questions / 2

    embed = discord.Embed(
        title="🎉 Quiz Completed!",
        description=f"**{describe_session(session)}**",
        color=0x22c55e if successful else 0xf97316
    )
    embed.add_field(name="📊 Final Score", value=f"{session.score}/{session.total_questions}", inline=True)

    if session.mode is QuizMode.MIXED:
        if session.passed:
            outcome = "Passed ✅"
        else:
            outcome = f"Not passed ❌ (need {engine.settings.pass_threshold} to pass)"
        embed.add_field(name=f"🏅 Level {session.level}", value=outcome, inline=True)

    duration = datetime.now() - session.start_time
    minutes = int(duration.total_seconds() // 60)
    seconds = int(duration.total_seconds() % 60)
    embed.add_field(name="⏱️ Duration", value=f"{minutes}m {seconds}s", inline=True)

    if session.max_level_reached:
        embed.add_field(
            name="🏆 Maximum Level Reached",
            value=f"You've conquered all {engine.settings.max_level} levels!",
            inline=False
        )

    embed.add_field(name="💬 Message", value=engine.result_message(session), inline=False)
    embed.set_footer(text="Thanks for playing!")
    return embed


def build_stopped_embed() -> discord.Embed:
    return discord.Embed(
        title="🛑 Quiz Ended",
        description="Use `/mixed` or `/topic` to start a new quiz.",
        color=0x6699ff
    )


@dataclass
class ChannelQuiz:
    """Quiz state for one channel: its controller and the live quiz message."""
    controller: QuizController
    message: Optional[discord.Message] = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


QuizAction = Callable[[QuizController], object]
SessionPosition = Tuple[datetime, int, Phase]


def session_position(session: QuizSession) -> SessionPosition:
    """Identifies the question and phase a rendered view belongs to."""
    return session.start_time, session.index, session.phase


class QuizView(discord.ui.View):
    """Buttons for the current phase of a channel's quiz."""

    def __init__(self, bot: "QuizBot", channel_id: int, session: QuizSession, bookmarked: bool = False):
        super().__init__(timeout=None)
        self.bot = bot
        self.channel_id = channel_id
        self.position = session_position(session)

        if session.phase is Phase.ANSWERING:
            self._add_answer_buttons(session, bookmarked)
        elif session.phase is Phase.FEEDBACK:
            self._add_button("Next", lambda c: c.advance(), discord.ButtonStyle.primary, row=0, emoji="➡️")
            self._add_bookmark_button(session, bookmarked, row=0)
        else:
            self._add_result_buttons(session)

    def _add_button(
        self,
        label: str,
        action: QuizAction,
        style: discord.ButtonStyle = discord.ButtonStyle.secondary,
        row: Optional[int] = None,
        emoji: Optional[str] = None,
        refresh: bool = False,
        offload: bool = False
    ) -> discord.ui.Button:
        button = discord.ui.Button(label=_truncate(label, BUTTON_LABEL_LIMIT), style=style, row=row, emoji=emoji)

        async def callback(interaction: discord.Interaction):
            await self.bot.handle_quiz_button(
                interaction, self.channel_id, action,
                refresh=refresh, expected=self.position, offload=offload
            )

        button.callback = callback
        self.add_item(button)
        return button

    def _add_bookmark_button(self, session: QuizSession, bookmarked: bool, row: int) -> None:
        # Toggling writes the bookmark file
        self._add_button(
            "★ Bookmarked" if bookmarked else "☆ Bookmark",
            lambda c, question=session.current_question: c.toggle_bookmark(question),
            discord.ButtonStyle.success if bookmarked else discord.ButtonStyle.secondary,
            row=row,
            refresh=True,
            offload=True
        )

    def _add_answer_buttons(self, session: QuizSession, bookmarked: bool) -> None:
        for i, (label, option) in enumerate(zip(OPTION_LABELS, session.current_question.options)):
            self._add_button(
                f"{label}. {option}",
                lambda c, answer=option: c.submit_answer(answer),
                discord.ButtonStyle.primary,
                row=i // 2
            )

        if session.skip_pending:
            self._add_button("Confirm Skip", lambda c: c.confirm_skip(), discord.ButtonStyle.danger, row=2, emoji="⏭️")
            self._add_button("Cancel", lambda c: c.cancel_skip(), discord.ButtonStyle.secondary, row=2)
        else:
            self._add_button("Skip", lambda c: c.request_skip(), discord.ButtonStyle.secondary, row=2, emoji="⏭️")
        self._add_bookmark_button(session, bookmarked, row=2)

    def _add_result_buttons(self, session: QuizSession) -> None:
        if session.mode is QuizMode.MIXED:
            if session.passed and not session.max_level_reached:
                self._add_button("Next Level", lambda c: c.progress_level(), discord.ButtonStyle.success, row=0, emoji="⬆️")
            elif not session.passed:
                self._add_button("Retry Level", lambda c: c.retry_session(), discord.ButtonStyle.primary, row=0, emoji="🔁")
        else:
            count = session.desired_count or session.total_questions
            self._add_button(
                f"Try {count} More Questions", lambda c: c.retry_session(), discord.ButtonStyle.primary, row=0, emoji="🔁"
            )
        self._add_button("New Quiz", lambda c: c.reset_session(), discord.ButtonStyle.secondary, row=0, emoji="🏠")


class QuizBot(commands.Bot):
    """Discord bot for conducting quizzes from the published question sheet"""

    def __init__(self, config=None):
        # Set up intents - minimal intents for slash commands
        intents = discord.Intents.none()
        intents.guilds = True  # Required for slash commands

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,  # Fallback prefix, mainly using slash commands
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}

        self.data_manager: Optional[DataManager] = None
        self.config_manager: Optional[ConfigManager] = None
        self.bookmark_store: Optional[BookmarkStore] = None
        self.channel_quizzes: Dict[int, ChannelQuiz] = {}
        self.scheduler_factory: Callable[[], Scheduler] = AsyncioScheduler
        self._render_tasks = set()

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")

            self.config_manager = ConfigManager()
            config_errors = self.config_manager.apply_config(self.app_config)
            if config_errors:
                logger.warning(f"Using defaults for {len(config_errors)} rejected settings")

            settings = self.config_manager.get_quiz_settings()
            self.data_manager = DataManager(settings.source_url, settings.subject_order, settings.topic_order)
            self.bookmark_store = BookmarkStore(JsonFileStore(settings.bookmark_file))

            await self.load_quiz_data()
            await self.setup_commands()

            logger.info("Bot setup completed successfully")

        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    async def setup_commands(self):
        """Register all slash commands"""
        try:
            @self.tree.command(name="help", description="Display available commands and their descriptions")
            async def help_command(interaction: discord.Interaction):
                await self.handle_help(interaction)

            @self.tree.command(name="mixed", description="Start a levelled quiz mixing every subject")
            async def mixed_command(interaction: discord.Interaction):
                await self.handle_mixed(interaction)

            @self.tree.command(name="topic", description="Start a quiz on one topic of a subject")
            @app_commands.describe(
                subject="Subject to practise",
                topic="Topic within the subject",
                count="Number of questions (0 for the whole topic)"
            )
            async def topic_command(
                interaction: discord.Interaction,
                subject: str,
                topic: str,
                count: Optional[app_commands.Range[int, 0, 100]] = None
            ):
                await self.handle_topic(interaction, subject, topic, count)

            @topic_command.autocomplete('subject')
            async def subject_autocomplete(interaction: discord.Interaction, current: str):
                return self.subject_choices(current)

            @topic_command.autocomplete('topic')
            async def topic_autocomplete(interaction: discord.Interaction, current: str):
                return self.topic_choices(getattr(interaction.namespace, 'subject', None), current)

            @self.tree.command(name="subjects", description="List subjects and topics in the question sheet")
            async def subjects_command(interaction: discord.Interaction):
                await self.handle_subjects(interaction)

            @self.tree.command(name="status", description="Show current quiz status and progress")
            async def status_command(interaction: discord.Interaction):
                await self.handle_status(interaction)

            @self.tree.command(name="stop", description="Stop the current quiz in this channel")
            async def stop_command(interaction: discord.Interaction):
                await self.handle_stop(interaction)

            @self.tree.command(name="bookmarks", description="Show your bookmarked questions")
            async def bookmarks_command(interaction: discord.Interaction):
                await self.handle_bookmarks(interaction)

            @self.tree.command(name="reload", description="Fetch the question sheet again")
            async def reload_command(interaction: discord.Interaction):
                await self.handle_reload(interaction)

            logger.info("Slash commands registered successfully")

        except Exception as e:
            logger.error(f"Error setting up commands: {e}")
            raise

    async def load_quiz_data(self):
        """Load the question catalog; the bot keeps running if it fails"""
        try:
            catalog = await self.data_manager.load_catalog()
            logger.info(f"Loaded {len(catalog)} questions from {self.data_manager.source_url}")
        except LoadError as e:
            logger.error(f"Error loading quiz data: {e}")

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        try:
            logger.info(f"Bot is ready! Logged in as {self.user}")
            logger.info(f"Bot is in {len(self.guilds)} guilds")

            print(f"🤖 {self.user} is Ready and Online!")
            print(f"📊 Connected to {len(self.guilds)} server(s)")

            try:
                synced = await self.tree.sync()
                logger.info(f"Synced {len(synced)} slash commands")
                print(f"⚡ Synced {len(synced)} slash commands")
            except discord.HTTPException as e:
                logger.error(f"Failed to sync slash commands: {e}")
                print(f"❌ Failed to sync slash commands: {e}")

        except Exception as e:
            logger.error(f"Error in on_ready event: {e}")

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors"""
        logger.error(f"An error occurred in event {event}", exc_info=True)

    async def close(self):
        for state in self.channel_quizzes.values():
            state.controller.close()
        await super().close()

    # Channel quiz state

    def get_controller(self, channel_id: int) -> QuizController:
        """Get or create the quiz controller for a channel"""
        state = self.channel_quizzes.get(channel_id)
        if state is None:
            controller = QuizController(
                self.data_manager,
                self.config_manager,
                self.bookmark_store,
                scheduler=self.scheduler_factory(),
                owner=f"channel {channel_id}"
            )
            controller.add_listener(
                lambda event, session, channel_id=channel_id: self.on_quiz_event(channel_id, event, session)
            )
            state = ChannelQuiz(controller)
            self.channel_quizzes[channel_id] = state
        return state.controller

    def on_quiz_event(self, channel_id: int, event: QuizEvent, session: Optional[QuizSession]) -> None:
        """Controller listener: schedule a re-render of the channel's quiz message"""
        if event is QuizEvent.TICK and session is not None and not should_render_tick(session.seconds_remaining):
            return

        task = asyncio.get_running_loop().create_task(self.refresh_quiz_message(channel_id))
        self._render_tasks.add(task)
        task.add_done_callback(self._render_tasks.discard)

    def render_session(self, channel_id: int, controller: QuizController) -> Tuple[discord.Embed, QuizView]:
        session = controller.session
        question = session.current_question
        bookmarked = question is not None and controller.is_bookmarked(question)

        if session.phase is Phase.ANSWERING:
            embed = build_question_embed(session, bookmarked)
        elif session.phase is Phase.FEEDBACK:
            embed = build_feedback_embed(session, bookmarked, controller.quiz_engine.settings.auto_advance_delay_ms)
        else:
            embed = build_results_embed(session, controller.quiz_engine)
        return embed, QuizView(self, channel_id, session, bookmarked)

    async def refresh_quiz_message(self, channel_id: int, retry: bool = True):
        """Edit the live quiz message to match the controller's current session"""
        state = self.channel_quizzes.get(channel_id)
        if state is None or state.message is None:
            return

        async with state.lock:
            message = state.message
            if message is None:
                return
            try:
                if state.controller.session is None:
                    await message.edit(embed=build_stopped_embed(), view=None)
                    state.message = None
                else:
                    embed, view = self.render_session(channel_id, state.controller)
                    await message.edit(embed=embed, view=view)
                return
            except discord.HTTPException as e:
                error = e

        # Back off without holding the lock
        may_retry = await self.handle_discord_api_error(error, f"refresh quiz message for channel {channel_id}")
        if may_retry and retry:
            await self.refresh_quiz_message(channel_id, retry=False)

    async def handle_quiz_button(
        self,
        interaction: discord.Interaction,
        channel_id: int,
        action: QuizAction,
        refresh: bool = False,
        expected: Optional[SessionPosition] = None,
        offload: bool = False
    ):
        """
        Run a button action against the channel's controller.

        Args:
            expected: Position of the view the button was rendered in; a click
                from a view the quiz has already moved past is dropped
            offload: Run the action in a worker thread (it does blocking I/O)
        """
        state = self.channel_quizzes.get(channel_id)
        if state is None or state.controller.session is None:
            await self.send_error_response(
                interaction,
                "This quiz is no longer active. Use `/mixed` or `/topic` to start a new one.",
                "❌ No Active Quiz"
            )
            return

        if expected is not None and session_position(state.controller.session) != expected:
            logger.debug(f"Dropping stale button click in channel {channel_id}")
            await self.send_warning_response(
                interaction,
                "The quiz has already moved on. Use the buttons on the current question.",
                "⚠️ Question Changed"
            )
            return

        try:
            await interaction.response.defer()
            if offload:
                await asyncio.to_thread(action, state.controller)
            else:
                action(state.controller)
        except QuizControllerError as e:
            logger.warning(f"Quiz action rejected in channel {channel_id}: {e}")
            await self.send_error_response(interaction, str(e), "❌ Quiz Error")
            return
        except discord.HTTPException as e:
            await self.handle_discord_api_error(e, "quiz button", interaction)
            return

        if refresh:
            await self.refresh_quiz_message(channel_id)

    # Error responses

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send error response to user with fallback handling"""
        try:
            embed = discord.Embed(
                title=title,
                description=message,
                color=0xff0000
            )
            embed.set_footer(text="If this error persists, try using /help for available commands")

            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)

        except discord.HTTPException as e:
            logger.error(f"Failed to send error embed: {e}")
            try:
                simple_message = f"{title}: {message}"
                if interaction.response.is_done():
                    await interaction.followup.send(simple_message, ephemeral=True)
                else:
                    await interaction.response.send_message(simple_message, ephemeral=True)
            except discord.HTTPException:
                logger.error("Failed to send fallback error message")

    async def send_warning_response(self, interaction: discord.Interaction, message: str, title: str = "⚠️ Warning"):
        """Send formatted warning response to user"""
        try:
            embed = discord.Embed(
                title=title,
                description=message,
                color=0xffaa00
            )

            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send warning response to user")

    async def handle_discord_api_error(self, error: Exception, operation: str, interaction: discord.Interaction = None) -> bool:
        """
        Handle Discord API errors with appropriate retry logic and user feedback.

        Args:
            error: The Discord API error
            operation: Description of the operation that failed
            interaction: Discord interaction object (optional)

        Returns:
            True if the operation may be retried, False otherwise
        """
        if isinstance(error, discord.HTTPException):
            if error.status == 429:
                retry_after = getattr(error, 'retry_after', 5)
                logger.warning(f"Rate limited during {operation}, waiting {retry_after}s")
                await asyncio.sleep(retry_after)
                return True

            elif error.status in [500, 502, 503, 504]:
                logger.warning(f"Discord server error during {operation}: {error.status}")
                await asyncio.sleep(2)
                return True

            elif error.status == 403:
                logger.error(f"Permission denied during {operation}: {error}")
                if interaction:
                    await self.send_error_response(
                        interaction,
                        "Bot doesn't have permission to perform this action. Please check bot permissions.",
                        "❌ Permission Error"
                    )
                return False

            elif error.status == 404:
                logger.error(f"Resource not found during {operation}: {error}")
                if interaction:
                    await self.send_error_response(
                        interaction,
                        "Channel or message not found. Please try again.",
                        "❌ Not Found"
                    )
                return False

            else:
                logger.error(f"Discord API error during {operation}: {error}")
                if interaction:
                    await self.send_error_response(
                        interaction,
                        "Discord API error occurred. Please try again in a moment.",
                        "❌ Discord Error"
                    )
                return False

        elif isinstance(error, asyncio.TimeoutError):
            logger.warning(f"Timeout during {operation}")
            if interaction:
                await self.send_error_response(
                    interaction,
                    "Operation timed out. Please try again.",
                    "❌ Timeout Error"
                )
            return False

        logger.error(f"Unexpected error during {operation}: {error}")
        if interaction:
            await self.send_error_response(
                interaction,
                "An unexpected error occurred. Please try again.",
                "❌ Unexpected Error"
            )
        return False

    def catalog_unavailable_message(self) -> str:
        if self.data_manager.is_loading():
            return "⏳ Questions are still loading. Please try again in a moment."
        if self.data_manager.last_error is not None:
            return self.data_manager.last_error.user_message
        return "❌ Questions have not been loaded yet. Use `/reload` to fetch them."

    # Autocomplete

    def subject_choices(self, current: str) -> List[app_commands.Choice[str]]:
        catalog = self.data_manager.catalog if self.data_manager else None
        if catalog is None:
            return []
        current = current.lower()
        return [
            app_commands.Choice(name=subject, value=subject)
            for subject in catalog.subjects
            if current in subject.lower()
        ][:AUTOCOMPLETE_LIMIT]

    def topic_choices(self, subject: Optional[str], current: str) -> List[app_commands.Choice[str]]:
        catalog = self.data_manager.catalog if self.data_manager else None
        if catalog is None or not subject:
            return []
        current = current.lower()
        return [
            app_commands.Choice(name=topic, value=topic)
            for topic in catalog.topics_for(subject)
            if current in topic.lower()
        ][:AUTOCOMPLETE_LIMIT]

    # Command handlers

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        try:
            help_embed = discord.Embed(
                title="🎯 Quiz Bot Commands",
                description="Practise with questions from the shared question sheet",
                color=0x00ff00
            )

            help_embed.add_field(
                name="🎮 Quiz Commands",
                value=(
                    "`/mixed` - Levelled quiz mixing every subject\n"
                    "`/topic <subject> <topic> [count]` - Quiz on a single topic\n"
                    "`/stop` - Stop the quiz in this channel\n"
                    "`/status` - Show current quiz progress"
                ),
                inline=False
            )
            help_embed.add_field(
                name="📚 Question Commands",
                value=(
                    "`/subjects` - List subjects and topics\n"
                    "`/bookmarks` - Show bookmarked questions\n"
                    "`/reload` - Fetch the question sheet again"
                ),
                inline=False
            )
            help_embed.add_field(
                name="⚙️ Current Settings",
                value=f"```\n{self.config_manager.get_settings_summary()}\n```",
                inline=False
            )

            catalog = self.data_manager.catalog
            if catalog is not None:
                summary = catalog.summary()
                value = f"{summary['total_questions']} questions across {len(summary['subjects'])} subjects"
            else:
                value = self.catalog_unavailable_message()
            help_embed.add_field(name="📦 Question Sheet", value=value, inline=False)

            help_embed.set_footer(text="Answer with the buttons under each question")
            await interaction.response.send_message(embed=help_embed)

        except Exception as e:
            logger.error(f"Error in help command: {e}")
            await self.send_error_response(interaction, "Failed to display help information", "❌ Help Error")

    async def handle_mixed(self, interaction: discord.Interaction):
        """Handle /mixed command"""
        await self.start_channel_quiz(interaction, QuizMode.MIXED)

    async def handle_topic(self, interaction: discord.Interaction, subject: str, topic: str, count: Optional[int] = None):
        """Handle /topic command; a count of 0 plays the whole topic"""
        desired_count = ALL_QUESTIONS if count == 0 else count
        await self.start_channel_quiz(interaction, QuizMode.TOPIC, subject, topic, desired_count)

    async def start_channel_quiz(
        self,
        interaction: discord.Interaction,
        mode: QuizMode,
        subject: Optional[str] = None,
        topic: Optional[str] = None,
        desired_count=None
    ):
        """Start a quiz in the interaction's channel and post its message"""
        channel_id = interaction.channel_id
        controller = self.get_controller(channel_id)
        state = self.channel_quizzes[channel_id]

        session = controller.session
        if session is not None and session.phase is not Phase.COMPLETED:
            await self.send_warning_response(
                interaction,
                "A quiz is already running in this channel. Use `/stop` to end it first.",
                "⚠️ Quiz In Progress"
            )
            return

        try:
            controller.start_session(mode, subject, topic, desired_count)
        except CatalogNotReadyError:
            await self.send_error_response(interaction, self.catalog_unavailable_message(), "❌ Questions Not Loaded")
            return
        except QuizControllerError as e:
            await self.send_error_response(interaction, str(e), "❌ Quiz Start Failed")
            return

        previous_message = state.message
        state.message = None
        if previous_message is not None:
            try:
                await previous_message.edit(view=None)
            except discord.HTTPException as e:
                logger.warning(f"Could not clear buttons on previous quiz message: {e}")

        try:
            embed, view = self.render_session(channel_id, controller)
            await interaction.response.send_message(embed=embed, view=view)
            state.message = await interaction.original_response()
        except discord.HTTPException as e:
            logger.error(f"Failed to post quiz message for channel {channel_id}: {e}")
            controller.reset_session()
            await self.handle_discord_api_error(e, "start quiz", interaction)

    async def handle_subjects(self, interaction: discord.Interaction):
        """Handle /subjects command"""
        try:
            catalog = self.data_manager.catalog
            if catalog is None:
                await self.send_error_response(interaction, self.catalog_unavailable_message(), "❌ Questions Not Loaded")
                return

            counts = Counter((q.subject, q.topic) for q in catalog.questions)
            embed = discord.Embed(
                title="📚 Subjects",
                description=f"{len(catalog)} questions available",
                color=0x6699ff
            )
            for subject in catalog.subjects[:25]:
                topics = "\n".join(
                    f"• {topic} ({counts[(subject, topic)]})" for topic in catalog.topics_for(subject)
                )
                embed.add_field(name=subject, value=_truncate(topics), inline=False)
            embed.set_footer(text="Use /topic <subject> <topic> to practise one topic")

            await interaction.response.send_message(embed=embed)

        except discord.HTTPException as e:
            await self.handle_discord_api_error(e, "subjects", interaction)

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        try:
            state = self.channel_quizzes.get(interaction.channel_id)
            progress = state.controller.get_session_progress() if state else None
            if progress is None:
                await self.send_warning_response(
                    interaction,
                    "There is no quiz in this channel. Use `/mixed` or `/topic` to start one.",
                    "ℹ️ No Active Quiz"
                )
                return

            status = {
                Phase.ANSWERING.value: ("▶️", "Answering", 0x00ff00),
                Phase.FEEDBACK.value: ("💡", "Reviewing Answer", 0x6699ff),
                Phase.COMPLETED.value: ("✅", "Completed", 0x6699ff),
            }
            emoji, status_text, color = status[progress['phase']]
            quiz_name = (
                f"Mixed Quiz · Level {progress['level']}" if progress['mode'] == QuizMode.MIXED.value
                else f"{progress['subject']} · {progress['topic']}"
            )

            embed = discord.Embed(
                title=f"{emoji} Quiz Status - {status_text}",
                description=f"**{quiz_name}**",
                color=color
            )
            embed.add_field(
                name="📊 Progress",
                value=(
                    f"Question: {progress['current_question']}/{progress['total_questions']}\n"
                    f"Completion: {progress['progress_percentage']}%\n"
                    f"Score: {progress['score']}"
                ),
                inline=True
            )

            duration = datetime.now() - progress['start_time']
            minutes = int(duration.total_seconds() // 60)
            seconds = int(duration.total_seconds() % 60)
            timing = f"Duration: {minutes}m {seconds}s"
            if progress['phase'] == Phase.ANSWERING.value:
                timing += f"\nTime left: {progress['seconds_remaining']}s"
            embed.add_field(name="⏱️ Timing", value=timing, inline=True)

            embed.set_footer(text="Use /help to see all available commands")
            await interaction.response.send_message(embed=embed)

        except discord.HTTPException as e:
            await self.handle_discord_api_error(e, "status", interaction)

    async def handle_stop(self, interaction: discord.Interaction):
        """Handle /stop command"""
        state = self.channel_quizzes.get(interaction.channel_id)
        if state is None or state.controller.session is None:
            await self.send_warning_response(interaction, "There is no quiz to stop in this channel.", "ℹ️ No Active Quiz")
            return

        session = state.controller.session
        state.controller.reset_session()
        try:
            embed = discord.Embed(
                title="🛑 Quiz Stopped",
                description=f"**{describe_session(session)}**",
                color=0xffaa00
            )
            embed.add_field(name="📊 Score", value=f"{session.score}/{session.total_questions}", inline=True)
            await interaction.response.send_message(embed=embed)
        except discord.HTTPException as e:
            await self.handle_discord_api_error(e, "stop", interaction)

    async def handle_bookmarks(self, interaction: discord.Interaction):
        """Handle /bookmarks command"""
        bookmarks = self.bookmark_store.list()
        if not bookmarks:
            await self.send_warning_response(
                interaction,
                "No bookmarks yet. Use the ☆ button on a question to save it.",
                "☆ No Bookmarks"
            )
            return

        try:
            embed = discord.Embed(
                title=f"★ Bookmarked Questions ({len(bookmarks)})",
                color=0x6699ff
            )
            for question in bookmarks[:BOOKMARK_LIST_LIMIT]:
                embed.add_field(
                    name=_truncate(question.text, 256),
                    value=_truncate(f"**{question.correct_answer}** · {question.subject} / {question.topic}"),
                    inline=False
                )
            if len(bookmarks) > BOOKMARK_LIST_LIMIT:
                embed.set_footer(text=f"... and {len(bookmarks) - BOOKMARK_LIST_LIMIT} more")

            await interaction.response.send_message(embed=embed, ephemeral=True)

        except discord.HTTPException as e:
            await self.handle_discord_api_error(e, "bookmarks", interaction)

    async def handle_reload(self, interaction: discord.Interaction):
        """Handle /reload command"""
        try:
            await interaction.response.defer(thinking=True)
            try:
                catalog = await self.data_manager.retry()
            except LoadError as e:
                await self.send_error_response(interaction, e.user_message, "❌ Reload Failed")
                return

            summary = catalog.summary()
            embed = discord.Embed(
                title="✅ Questions Reloaded",
                description=f"{summary['total_questions']} questions across {len(summary['subjects'])} subjects",
                color=0x00ff00
            )
            if summary['rejected_rows']:
                embed.add_field(
                    name="⚠️ Skipped Rows",
                    value=f"{summary['rejected_rows']} malformed rows were ignored",
                    inline=False
                )
            await interaction.followup.send(embed=embed)

        except discord.HTTPException as e:
            await self.handle_discord_api_error(e, "reload", interaction)


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = QuizBot(config)

    try:
        logger.info("Starting Discord Quiz Bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
