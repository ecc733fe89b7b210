"""
Discord front end for the quiz runner: slash commands, question embeds and answer buttons.
"""
import discord
from discord.ext import commands
import logging
import asyncio
from typing import Dict, List, Optional
import os

from .data_manager import DataManager, QuestionLoadError
from .config_manager import ConfigManager
from .models import QuizSettings, Question, SessionState
from .quiz_controller import QuizController
from .quiz_engine import QuizEngine

logger = logging.getLogger(__name__)

COLOR_GREEN = 0x22c55e
COLOR_YELLOW = 0xeab308
COLOR_RED = 0xef4444
COLOR_INFO = 0x6366f1

MAX_BUTTON_LABEL = 80
MAX_OPTION_BUTTONS = 25
MAX_SUMMARY_FIELDS = 25


def truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit - 1] + "…"


def progress_color(seconds_remaining: int, timer_duration: int) -> int:
    """Green above 65% of the countdown, yellow down to 35%, red below that."""
    if timer_duration <= 0:
        return COLOR_RED
    fraction = seconds_remaining / timer_duration
    if fraction <= 0.35:
        return COLOR_RED
    if fraction <= 0.65:
        return COLOR_YELLOW
    return COLOR_GREEN


def progress_bar(seconds_remaining: int, timer_duration: int, width: int = 20) -> str:
    filled = round(width * seconds_remaining / timer_duration) if timer_duration > 0 else 0
    filled = max(0, min(width, filled))
    return "█" * filled + "░" * (width - filled)


def build_question_embed(state: SessionState, timer_duration: int) -> discord.Embed:
    """Render the question currently being asked."""
    question = state.questions[state.current_index]
    embed = discord.Embed(
        title=f"🎯 Question {state.current_index + 1} of {len(state.questions)}",
        description=question.text,
        color=progress_color(state.seconds_remaining, timer_duration)
    )
    embed.add_field(name="🏆 Score", value=str(state.score), inline=True)
    embed.add_field(
        name="⏱️ Time Remaining",
        value=f"`{progress_bar(state.seconds_remaining, timer_duration)}` {state.seconds_remaining} sec",
        inline=False
    )
    if state.is_answer_locked:
        embed.set_footer(text="Answer locked, next question coming up")
    else:
        embed.set_footer(text="Pick an answer before the time runs out")
    return embed


def build_feedback_embed(is_correct: bool) -> discord.Embed:
    if is_correct:
        return discord.Embed(title="✅ Correct!", description="Good job!", color=COLOR_GREEN)
    return discord.Embed(title="❌ Wrong Answer!", description="Better luck next time!", color=COLOR_RED)


def build_summary_embed(state: SessionState) -> discord.Embed:
    """Render the final score and the answer log as a results table."""
    total = len(state.questions)
    embed = discord.Embed(
        title="🎉 Quiz Finished!",
        description=f"**Final Score: {state.score} / {total}**",
        color=COLOR_GREEN if total and state.score * 2 >= total else COLOR_RED
    )

    shown = state.answer_log[:MAX_SUMMARY_FIELDS - 1] if len(state.answer_log) > MAX_SUMMARY_FIELDS else state.answer_log
    for number, record in enumerate(shown, start=1):
        result = "✅ Correct" if record.was_correct else "❌ Wrong"
        embed.add_field(
            name=truncate(f"{number}. {record.question_text}", 256),
            value=truncate(
                f"Your answer: {record.chosen_answer_text}\n"
                f"Correct answer: {record.correct_answer_text}\n"
                f"Result: {result}",
                1024
            ),
            inline=False
        )

    hidden = len(state.answer_log) - len(shown)
    if hidden:
        embed.add_field(name="…", value=f"{hidden} more answers not shown", inline=False)

    embed.set_footer(text="Press Restart Quiz to play again")
    return embed


class QuizView(discord.ui.View):
    """One button per option of the current question."""

    def __init__(self, quiz: "ChannelQuiz", state: SessionState):
        super().__init__(timeout=None)
        self.quiz = quiz
        self.generation = quiz.controller.generation

        question = state.questions[state.current_index]
        for index, option in enumerate(question.options[:MAX_OPTION_BUTTONS]):
            button = discord.ui.Button(
                label=truncate(option.text, MAX_BUTTON_LABEL),
                style=discord.ButtonStyle.secondary,
                row=index // 5,
                disabled=state.is_answer_locked
            )
            button.callback = self._make_callback(index)
            self.add_item(button)

    def _make_callback(self, index: int):
        async def callback(interaction: discord.Interaction):
            await interaction.response.defer()
            # Clicks on a view rendered for an earlier question are dropped
            if self.generation != self.quiz.controller.generation:
                logger.debug(f"Ignoring click on stale view for channel {self.quiz.channel_id}")
                return
            self.quiz.controller.select_option(index)
        return callback

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if interaction.user.id != self.quiz.owner_id:
            await interaction.response.send_message(
                "Only the player who started this quiz can answer.",
                ephemeral=True
            )
            return False
        return True


class SummaryView(discord.ui.View):
    """Restart button shown with the final summary."""

    def __init__(self, quiz: "ChannelQuiz"):
        super().__init__(timeout=None)
        self.quiz = quiz

    @discord.ui.button(label="Restart Quiz", style=discord.ButtonStyle.primary, emoji="🔄")
    async def restart_button(self, interaction: discord.Interaction, button: discord.ui.Button):
        await interaction.response.defer()
        self.quiz.restart()

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if interaction.user.id != self.quiz.owner_id:
            await interaction.response.send_message(
                "Only the player who started this quiz can restart it.",
                ephemeral=True
            )
            return False
        return True


class ChannelQuiz:
    """
    Presents one quiz session in a Discord channel.

    The controller reports every transition synchronously; rendering happens
    in background tasks that edit a single message, serialized by a lock so
    edits reach Discord in order and always show the latest state.
    """

    def __init__(
        self,
        channel: discord.abc.Messageable,
        owner_id: int,
        questions: List[Question],
        settings: Optional[QuizSettings] = None
    ):
        self.channel = channel
        self.channel_id = getattr(channel, "id", None)
        self.owner_id = owner_id
        self.message: Optional[discord.Message] = None
        self.controller = QuizController(
            questions,
            settings,
            on_state_change=self._on_state_change,
            on_feedback=self._on_feedback,
            session_id=str(self.channel_id)
        )
        self._render_lock = asyncio.Lock()
        self._last_rendered = None
        self._tasks = set()

    async def start(self) -> None:
        """Send the first question and start the countdown."""
        state = self.controller.state
        self.message = await self.channel.send(
            embed=build_question_embed(state, self.controller.settings.timer_duration),
            view=QuizView(self, state)
        )
        self._last_rendered = self._render_key(state)
        self.controller.start()

    def restart(self) -> None:
        self.controller.restart()

    async def stop(self) -> None:
        """End the session and remove the buttons from the quiz message."""
        self.controller.close()
        for task in list(self._tasks):
            task.cancel()
        if self.message is not None:
            try:
                await self.message.edit(view=None)
            except discord.HTTPException as e:
                logger.error(f"Failed to clear quiz buttons for channel {self.channel_id}: {e}")

    def _on_state_change(self, state: SessionState) -> None:
        self._spawn(self.render())

    def _on_feedback(self, is_correct: bool) -> None:
        self._spawn(self._send_feedback(is_correct))

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @staticmethod
    def _render_key(state: SessionState):
        return (
            state.current_index,
            state.seconds_remaining,
            state.is_answer_locked,
            state.is_finished,
            len(state.answer_log)
        )

    async def render(self) -> None:
        """Bring the quiz message up to date with the controller's latest state."""
        async with self._render_lock:
            if self.message is None:
                return

            state = self.controller.state
            key = self._render_key(state)
            if key == self._last_rendered:
                return
            self._last_rendered = key

            try:
                if state.is_finished:
                    await self.message.edit(embed=build_summary_embed(state), view=SummaryView(self))
                else:
                    await self.message.edit(
                        embed=build_question_embed(state, self.controller.settings.timer_duration),
                        view=QuizView(self, state)
                    )
            except discord.HTTPException as e:
                logger.error(f"Failed to update quiz message for channel {self.channel_id}: {e}")

    async def _send_feedback(self, is_correct: bool) -> None:
        try:
            await self.channel.send(
                embed=build_feedback_embed(is_correct),
                delete_after=max(self.controller.settings.advance_delay, 1.0)
            )
        except discord.HTTPException as e:
            logger.error(f"Failed to send answer feedback for channel {self.channel_id}: {e}")


class QuizBot(commands.Bot):
    """Discord bot that runs timed multiple-choice quizzes"""

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

        self.config_manager: Optional[ConfigManager] = None
        self.data_manager: Optional[DataManager] = None
        self.quiz_engine = QuizEngine()
        self.questions: List[Question] = []
        self.active_quizzes: Dict[int, ChannelQuiz] = {}

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")

            self.config_manager = ConfigManager()
            await self.apply_configuration()

            self.data_manager = DataManager(self.config_manager.get_question_file(), engine=self.quiz_engine)
            await self.load_quiz_data()

            await self.setup_commands()

            logger.info("Bot setup completed successfully")

        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    async def apply_configuration(self):
        """Apply settings from configuration file to the config manager."""
        self.config_manager.reset_to_defaults()
        result = self.config_manager.apply_config(self.app_config.get('quiz', {}))
        if result['success']:
            logger.info("Configuration applied successfully")
        else:
            # Rejected values keep their defaults
            for error in result['errors']:
                logger.warning(f"Configuration value rejected: {error}")

    async def load_quiz_data(self):
        """Load and prepare the question file"""
        try:
            self.questions = self.data_manager.load_questions()
        except QuestionLoadError as e:
            self.questions = []
            logger.error(f"Questions could not be loaded: {e}")

    async def setup_commands(self):
        """Register all slash commands"""
        @self.tree.command(name="quiz", description="Start a timed quiz in this channel")
        async def quiz_command(interaction: discord.Interaction):
            await self.handle_quiz(interaction)

        @self.tree.command(name="stop", description="Stop the quiz running in this channel")
        async def stop_command(interaction: discord.Interaction):
            await self.handle_stop(interaction)

        @self.tree.command(name="status", description="Show progress of the quiz in this channel")
        async def status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        @self.tree.command(name="help", description="Display available commands")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        logger.info("Slash commands registered successfully")

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot is ready! Logged in as {self.user}")
        logger.info(f"Bot is in {len(self.guilds)} guilds")

        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors"""
        logger.error(f"An error occurred in event {event}", exc_info=True)

    async def handle_quiz(self, interaction: discord.Interaction):
        """Handle /quiz command"""
        channel_id = interaction.channel_id

        existing = self.active_quizzes.get(channel_id)
        if existing is not None and not existing.controller.state.is_finished:
            await self.send_warning_response(
                interaction,
                "A quiz is already running in this channel. Use `/stop` to end it first.",
                "⚠️ Quiz In Progress"
            )
            return

        if not self.questions:
            errors = self.data_manager.get_load_errors() if self.data_manager else []
            message = "No questions are available."
            if errors:
                message += "\n```\n" + "\n".join(errors[:5]) + "\n```"
            await self.send_error_response(interaction, message, "❌ Quiz Unavailable")
            return

        settings = self.config_manager.get_quiz_settings()
        try:
            questions = self.quiz_engine.select_questions(self.questions, settings)
            quiz = ChannelQuiz(interaction.channel, interaction.user.id, questions, settings)
        except (QuestionLoadError, ValueError) as e:
            logger.error(f"Failed to create quiz for channel {channel_id}: {e}")
            await self.send_error_response(interaction, f"The quiz could not be started: {e}", "❌ Quiz Unavailable")
            return

        if existing is not None:
            await existing.stop()
        self.active_quizzes[channel_id] = quiz

        await self.send_info_response(
            interaction,
            f"{len(questions)} questions, {settings.timer_duration} seconds each. Good luck!",
            "🎯 Quiz Started"
        )
        try:
            await quiz.start()
        except discord.HTTPException as e:
            logger.error(f"Failed to present quiz in channel {channel_id}: {e}")
            await quiz.stop()
            self.active_quizzes.pop(channel_id, None)

    async def handle_stop(self, interaction: discord.Interaction):
        """Handle /stop command"""
        quiz = self.active_quizzes.pop(interaction.channel_id, None)
        if quiz is None:
            await self.send_info_response(interaction, "No quiz is running in this channel.")
            return

        await quiz.stop()
        await self.send_info_response(interaction, "The quiz has been stopped.", "🛑 Quiz Stopped")

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        quiz = self.active_quizzes.get(interaction.channel_id)
        if quiz is None:
            await self.send_info_response(interaction, "No quiz is running in this channel.")
            return

        progress = quiz.controller.get_session_progress()
        if progress['is_finished']:
            message = f"Finished with a score of {progress['score']} / {progress['total_questions']}."
        else:
            message = (
                f"Question {progress['question_number']} of {progress['total_questions']}\n"
                f"Score: {progress['score']}\n"
                f"Time remaining: {progress['seconds_remaining']} sec"
            )
        await self.send_info_response(interaction, message, "📊 Quiz Status")

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        message = (
            "`/quiz` - Start a timed quiz in this channel\n"
            "`/stop` - Stop the running quiz\n"
            "`/status` - Show the current question and score\n\n"
            + self.config_manager.get_settings_summary()
        )
        await self.send_info_response(interaction, message, "📚 Quiz Master Help")

    async def close(self):
        for quiz in list(self.active_quizzes.values()):
            await quiz.stop()
        self.active_quizzes.clear()
        await super().close()

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send formatted error response to user"""
        await self._send_response(interaction, message, title, 0xff0000)

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        """Send formatted info response to user"""
        await self._send_response(interaction, message, title, COLOR_INFO)

    async def send_warning_response(self, interaction: discord.Interaction, message: str, title: str = "⚠️ Warning"):
        """Send formatted warning response to user"""
        await self._send_response(interaction, message, title, 0xffaa00)

    async def _send_response(self, interaction: discord.Interaction, message: str, title: str, color: int):
        try:
            embed = discord.Embed(title=title, description=message, color=color)
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error(f"Failed to send response '{title}' to user")


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    # Fall back to environment variable if no token provided
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = QuizBot(config)

    try:
        logger.info("Starting Quiz Master bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
