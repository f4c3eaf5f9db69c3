import discord
from discord import app_commands
from discord.ext import commands
import logging
import json
import os
import string
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config_manager import ConfigManager
from .data_manager import DataManager
from .game_controller import GameController
from .game_engine import MAX_OPTIONS
from .game_session import GameSession, SessionListener
from .models import RandomizedQuestion, ScoreEntry, SessionSummary
from .score_reporter import ScoreReporter, render_points_chart, score_grade, score_percentage

logger = logging.getLogger(__name__)

COLOR_SUCCESS = 0x00ff00
COLOR_INFO = 0x6699ff
COLOR_WARNING = 0xffaa00
COLOR_ERROR = 0xff0000

OPTION_LETTERS = string.ascii_uppercase[:MAX_OPTIONS]
MAX_FIELD_LENGTH = 1024


def setup_logging(config: Optional[Dict[str, Any]] = None) -> logging.Logger:
    """Set up console, bot.log and errors.log handlers from the 'logging' config section."""
    log_config = (config or {}).get('logging', {})
    log_level = getattr(logging, str(log_config.get('level', 'INFO')).upper(), logging.INFO)
    logs_dir = Path(log_config.get('log_directory', './logs/'))
    logs_dir.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),  # Console output
            logging.FileHandler(logs_dir / "bot.log", encoding='utf-8'),
        ]
    )

    error_handler = logging.FileHandler(logs_dir / "errors.log", encoding='utf-8')
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))
    logging.getLogger().addHandler(error_handler)

    # Reduce discord.py noise
    logging.getLogger('discord').setLevel(logging.WARNING)
    logging.getLogger('discord.http').setLevel(logging.WARNING)

    return logging.getLogger(__name__)


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit - 1] + "…"


def format_time(seconds: int) -> str:
    minutes, secs = divmod(max(0, int(seconds)), 60)
    return f"{minutes}:{secs:02d}"


def timer_color(remaining: int, budget: int) -> int:
    if budget > 0 and remaining > budget * 0.25:
        return COLOR_SUCCESS
    if remaining > 10:
        return COLOR_WARNING
    return COLOR_ERROR


def format_options(question: RandomizedQuestion, selected: Optional[int] = None, reveal: bool = False) -> str:
    """Option list with letters; marks the correct and the wrongly selected option when revealed."""
    lines = []
    for position, option in enumerate(question.randomized_options):
        marker = ""
        if reveal and position == question.correct_position:
            marker = " ✅"
        elif reveal and position == selected:
            marker = " ❌"
        lines.append(f"**{OPTION_LETTERS[position]}.** {option}{marker}")
    return _truncate("\n".join(lines), MAX_FIELD_LENGTH)


def build_question_embed(session: GameSession) -> discord.Embed:
    """Embed for the open question of a session."""
    state = session.state
    question = session.current_question
    game = session.game

    embed = discord.Embed(
        title=f"🧩 Question {state.current_index + 1}/{game.question_count}",
        description=question.question.question,
        color=timer_color(state.time_remaining, session.time_budget)
    )
    if state.current_index == 0 and game.metadata.instructions:
        embed.add_field(name="📋 Instructions", value=_truncate(game.metadata.instructions, MAX_FIELD_LENGTH), inline=False)
    embed.add_field(name="Options", value=format_options(question), inline=False)
    if state.hint_visible:
        embed.add_field(name="💡 Hint", value=_truncate(question.question.hint, MAX_FIELD_LENGTH), inline=False)
    embed.add_field(name="⏱️ Time Remaining", value=format_time(state.time_remaining), inline=True)
    embed.add_field(name="🏆 Points", value=str(sum(entry.points for entry in state.scores)), inline=True)
    embed.set_footer(text=f"{game.name} • {game.metadata.difficulty or 'unrated'}")
    return embed


def build_answer_embed(session: GameSession, entry: ScoreEntry) -> discord.Embed:
    """Embed for a resolved question, showing the solution after an incorrect answer."""
    state = session.state
    question = session.current_question
    game = session.game

    if entry.correct:
        title = f"✅ Correct! +{entry.points} points"
        color = COLOR_SUCCESS
    elif entry.time_remaining <= 0 and state.selected_answer is None:
        title = "⏰ Time's Up!"
        color = COLOR_ERROR
    else:
        title = "❌ Incorrect"
        color = COLOR_ERROR

    embed = discord.Embed(
        title=f"{title} - Question {state.current_index + 1}/{game.question_count}",
        description=question.question.question,
        color=color
    )
    embed.add_field(
        name="Options",
        value=format_options(question, selected=state.selected_answer, reveal=True),
        inline=False
    )
    if not entry.correct and question.question.solution:
        embed.add_field(name="📖 Solution", value=_truncate(question.question.solution, MAX_FIELD_LENGTH), inline=False)
    if entry.used_hint:
        embed.add_field(name="💡 Hint used", value="Half points for this question", inline=True)

    if entry.correct:
        embed.set_footer(text="Next question coming up...")
    elif state.selected_answer is not None:
        embed.set_footer(text="Press Continue when you are ready")
    return embed


def build_report_embed(summary: SessionSummary) -> discord.Embed:
    """Score report shown after the last question."""
    percentage = score_percentage(summary)
    embed = discord.Embed(
        title=f"🎉 {score_grade(summary.total_points, summary.max_possible_score)}",
        description=f"**{summary.game_name}** complete",
        color=COLOR_SUCCESS if percentage >= 60 else COLOR_WARNING
    )
    embed.add_field(
        name="🏆 Total Score",
        value=f"{summary.total_points}/{summary.max_possible_score} ({percentage}%)",
        inline=True
    )
    embed.add_field(name="✅ Correct", value=str(summary.correct_answers), inline=True)
    embed.add_field(name="❌ Incorrect", value=str(summary.incorrect_answers), inline=True)
    embed.add_field(
        name="📊 Points per Question",
        value=_truncate(f"```\n{render_points_chart(summary.question_points)}\n```", MAX_FIELD_LENGTH),
        inline=False
    )
    embed.set_footer(text="Play again or end the game to save your score")
    return embed


def build_end_embed(result: Dict[str, Any]) -> discord.Embed:
    summary: Optional[SessionSummary] = result.get('summary')
    embed = discord.Embed(title="🛑 Game Ended", color=COLOR_INFO)
    if summary is not None:
        embed.description = f"**{summary.game_name}**"
        embed.add_field(
            name="📊 Result",
            value=(
                f"Score: {summary.total_points}/{summary.max_possible_score}\n"
                f"Questions attempted: {summary.questions_attempted}/{summary.total_questions}"
            ),
            inline=False
        )
        if result.get('delivered'):
            embed.add_field(name="💾 Saved", value="Your score has been recorded", inline=False)
    if result.get('warning'):
        embed.color = COLOR_WARNING
        embed.add_field(name="⚠️ Warning", value=result['warning'], inline=False)
    embed.set_footer(text="Use /games to find another game")
    return embed


def build_games_embed(hierarchy: List[Dict[str, Any]], search_term: str = "") -> discord.Embed:
    """Main subject -> sub subject -> game listing, one field per sub subject."""
    title = f"🔎 Games matching '{search_term}'" if search_term else "📚 Available Games"
    embed = discord.Embed(title=title, color=COLOR_INFO)

    field_count = 0
    for main in hierarchy:
        for sub in main.get("main_subject_context") or []:
            games = sub.get("sub_subject_context") or []
            if not games:
                continue
            if field_count == 25:
                embed.set_footer(text="More results available, narrow your search")
                return embed
            lines = []
            for game in games:
                metadata = game.get("metadata") or {}
                lines.append(
                    f"• **{game.get('name', game.get('id'))}** `{game.get('id')}` "
                    f"({metadata.get('difficulty', '?')}, {len(game.get('questions') or [])} questions)"
                )
            embed.add_field(
                name=_truncate(f"{main.get('main_subject', '?')} › {sub.get('sub_subject', '?')}", 256),
                value=_truncate("\n".join(lines), MAX_FIELD_LENGTH),
                inline=False
            )
            field_count += 1

    if field_count == 0:
        embed.description = "No games found." if search_term else "No games have been added yet. Use `/add_game` to add one."
    else:
        embed.set_footer(text="Use /play <game id> to start a game")
    return embed


def build_scores_embed(records: List[Dict[str, Any]], game_id: Optional[str] = None) -> discord.Embed:
    embed = discord.Embed(
        title=f"📈 Recent Scores{f' for {game_id}' if game_id else ''}",
        color=COLOR_INFO
    )
    if not records:
        embed.description = "No scores recorded yet."
        return embed

    lines = []
    for record in records[-10:][::-1]:
        lines.append(
            f"• **{record.get('game_name', record.get('game_id'))}**: {record.get('total_score', 0)} points, "
            f"{record.get('questions_attempted', 0)}/{record.get('total_questions', 0)} attempted "
            f"({str(record.get('timestamp', ''))[:16].replace('T', ' ')})"
        )
    embed.description = _truncate("\n".join(lines), 4096)
    return embed


class AnswerButton(discord.ui.Button):
    """One answer option, identified by its display position."""

    def __init__(self, bot: "LogicGamesBot", position: int, option: str, style: discord.ButtonStyle, disabled: bool):
        super().__init__(
            label=_truncate(f"{OPTION_LETTERS[position]}. {option}", 80),
            style=style,
            disabled=disabled,
            row=position // 5
        )
        self.bot = bot
        self.position = position

    async def callback(self, interaction: discord.Interaction):
        await self.bot.handle_answer_button(interaction, self.position)


class HintButton(discord.ui.Button):
    def __init__(self, bot: "LogicGamesBot", penalty: int, disabled: bool):
        super().__init__(
            label=f"💡 Hint (-{penalty} points)",
            style=discord.ButtonStyle.secondary,
            disabled=disabled,
            row=4
        )
        self.bot = bot

    async def callback(self, interaction: discord.Interaction):
        await self.bot.handle_hint_button(interaction)


class ContinueButton(discord.ui.Button):
    def __init__(self, bot: "LogicGamesBot"):
        super().__init__(label="➡️ Continue", style=discord.ButtonStyle.primary, row=4)
        self.bot = bot

    async def callback(self, interaction: discord.Interaction):
        await self.bot.handle_continue_button(interaction)


class PlayAgainButton(discord.ui.Button):
    def __init__(self, bot: "LogicGamesBot"):
        super().__init__(label="🔄 Play again", style=discord.ButtonStyle.success, row=4)
        self.bot = bot

    async def callback(self, interaction: discord.Interaction):
        await self.bot.handle_play_again_button(interaction)


class EndButton(discord.ui.Button):
    def __init__(self, bot: "LogicGamesBot"):
        super().__init__(label="🛑 End game", style=discord.ButtonStyle.danger, row=4)
        self.bot = bot

    async def callback(self, interaction: discord.Interaction):
        await self.bot.handle_end_button(interaction)


class QuestionView(discord.ui.View):
    """
    Buttons for one question.

    While the question is open every option is clickable. Once it is
    resolved the options are disabled, the correct one turns green and a
    wrong selection red; an incorrect answer adds a Continue button.
    """

    def __init__(self, bot: "LogicGamesBot", session: GameSession):
        super().__init__(timeout=None)
        state = session.state
        question = session.current_question
        answered = state.answered

        for position, option in enumerate(question.randomized_options[:MAX_OPTIONS]):
            style = discord.ButtonStyle.primary
            if answered and position == question.correct_position:
                style = discord.ButtonStyle.success
            elif answered and position == state.selected_answer:
                style = discord.ButtonStyle.danger
            self.add_item(AnswerButton(bot, position, option, style, disabled=answered))

        if not answered:
            if question.question.hint:
                penalty = session.settings.points_without_hint - session.settings.points_with_hint
                self.add_item(HintButton(bot, penalty, disabled=state.hint_visible))
        elif state.scores and not state.scores[-1].correct and state.selected_answer is not None:
            self.add_item(ContinueButton(bot))

        self.add_item(EndButton(bot))


class ReportView(discord.ui.View):
    def __init__(self, bot: "LogicGamesBot"):
        super().__init__(timeout=None)
        self.add_item(PlayAgainButton(bot))
        self.add_item(EndButton(bot))


class DiscordSessionListener(SessionListener):
    """
    Renders session events into one channel.

    Each question gets its own message; later events for that question edit
    it. Timer ticks are only rendered every TICK_RENDER_INTERVAL seconds and
    during the final seconds to stay inside Discord's rate limits.
    """

    TICK_RENDER_INTERVAL = 10
    FINAL_SECONDS = 5

    def __init__(self, bot: "LogicGamesBot", channel):
        self.bot = bot
        self.channel = channel
        self.message: Optional[discord.Message] = None

    async def on_question_started(self, session: GameSession) -> None:
        await self._disable_previous()
        try:
            self.message = await self.channel.send(
                embed=build_question_embed(session),
                view=QuestionView(self.bot, session)
            )
        except discord.HTTPException as e:
            logger.error(f"Failed to send question for channel {session.session_key}: {e}")
            self.message = None

    async def on_timer_tick(self, session: GameSession, remaining: int) -> None:
        if remaining <= 0:
            return
        if remaining % self.TICK_RENDER_INTERVAL and remaining > self.FINAL_SECONDS:
            return
        await self._edit(embed=build_question_embed(session))

    async def on_hint_shown(self, session: GameSession) -> None:
        await self._edit(embed=build_question_embed(session), view=QuestionView(self.bot, session))

    async def on_answer_resolved(self, session: GameSession, entry: ScoreEntry) -> None:
        await self._edit(embed=build_answer_embed(session, entry), view=QuestionView(self.bot, session))

    async def on_time_expired(self, session: GameSession, entry: ScoreEntry) -> None:
        await self._edit(embed=build_answer_embed(session, entry), view=None)

    async def on_report_ready(self, session: GameSession, summary: SessionSummary) -> None:
        await self._disable_previous()
        try:
            self.message = await self.channel.send(embed=build_report_embed(summary), view=ReportView(self.bot))
        except discord.HTTPException as e:
            logger.error(f"Failed to send score report for channel {session.session_key}: {e}")
            self.message = None

    async def on_session_ended(self, session: GameSession, result: Dict[str, Any]) -> None:
        await self._disable_previous()

    async def _disable_previous(self) -> None:
        if self.message is not None:
            await self._edit(view=None)
            self.message = None

    async def _edit(self, **kwargs) -> None:
        if self.message is None:
            return
        try:
            await self.message.edit(**kwargs)
        except discord.HTTPException as e:
            logger.warning(f"Failed to update game message: {e}")


class LogicGamesBot(commands.Bot):
    """Discord bot for playing logic games"""

    def __init__(self, config=None):
        # Minimal intents for slash commands
        intents = discord.Intents.none()
        intents.guilds = True

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
        self.score_reporter: Optional[ScoreReporter] = None
        self.game_controller: Optional[GameController] = None

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")
            self.setup_components()
            await self.setup_commands()
            logger.info("Bot setup completed successfully")
        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    def setup_components(self):
        """Create the managers from the configuration file."""
        self.config_manager = ConfigManager()
        config_errors = self.config_manager.apply_config(self.app_config)
        for error in config_errors:
            logger.warning(f"Ignoring configuration value: {error}")

        health = self.config_manager.get_configuration_health_check()
        for problem in health['errors']:
            logger.error(f"Configuration problem: {problem}")
        for warning in health['warnings']:
            logger.warning(f"Configuration warning: {warning}")

        self.data_manager = DataManager(self.config_manager.get_game_data_file())
        self.score_reporter = ScoreReporter(self.config_manager.get_score_report_file())
        self.game_controller = GameController(self.data_manager, self.config_manager, self.score_reporter)

        loading_summary = self.data_manager.get_loading_summary()
        logger.info(
            f"Loaded {loading_summary['total_games']} games in "
            f"{len(loading_summary['main_subjects'])} main subjects from {loading_summary['data_file']}"
        )
        for error in loading_summary['errors']:
            logger.warning(f"Game document: {error}")

    async def setup_commands(self):
        """Register all slash commands"""

        @self.tree.command(name="help", description="Display available commands and their descriptions")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="games", description="Browse available games by subject")
        @app_commands.describe(search="Filter by subject, game name or category")
        async def games_command(interaction: discord.Interaction, search: Optional[str] = None):
            await self.handle_games(interaction, search or "")

        @self.tree.command(name="play", description="Start a game in this channel")
        @app_commands.describe(game_id="Game id as shown by /games")
        async def play_command(interaction: discord.Interaction, game_id: str):
            await self.handle_play(interaction, game_id)

        @self.tree.command(name="hint", description="Show the hint for the current question (half points)")
        async def hint_command(interaction: discord.Interaction):
            await self.handle_hint(interaction)

        @self.tree.command(name="end", description="End the current game and save the score")
        async def end_command(interaction: discord.Interaction):
            await self.handle_end(interaction)

        @self.tree.command(name="status", description="Show the current game's progress")
        async def status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        @self.tree.command(name="add_game", description="Add a game from a JSON file")
        @app_commands.describe(
            main_subject="Main subject, existing or new",
            sub_subject="Sub subject, existing or new",
            name="Display name of the game",
            file="JSON file with 'questions' and 'metadata'"
        )
        async def add_game_command(
            interaction: discord.Interaction,
            main_subject: str,
            sub_subject: str,
            name: str,
            file: discord.Attachment
        ):
            await self.handle_add_game(interaction, main_subject, sub_subject, name, file)

        @self.tree.command(name="set_timer", description="Set the default seconds per question for games without a timer")
        async def set_timer_command(interaction: discord.Interaction, seconds: int):
            await self.handle_set_timer(interaction, seconds)

        @self.tree.command(name="set_delay", description="Set the pause after a correct answer (seconds)")
        async def set_delay_command(interaction: discord.Interaction, seconds: float):
            await self.handle_set_delay(interaction, seconds)

        @self.tree.command(name="scores", description="Show recently recorded scores")
        @app_commands.describe(game_id="Only show scores for this game")
        async def scores_command(interaction: discord.Interaction, game_id: Optional[str] = None):
            await self.handle_scores(interaction, game_id)

        logger.info("Slash commands registered successfully")

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot is ready! Logged in as {self.user}")
        logger.info(f"Bot is in {len(self.guilds)} guilds")
        print(f"🤖 {self.user} is Ready and Online!")

        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
            print(f"⚡ Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")
            print(f"❌ Failed to sync slash commands: {e}")

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors"""
        logger.error(f"An error occurred in event {event}", exc_info=True)

    async def close(self):
        if self.game_controller is not None:
            await self.game_controller.shutdown()
        await super().close()

    # Slash command handlers

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        try:
            help_embed = discord.Embed(
                title="🧩 Logic Games Bot Commands",
                description="Play multiple choice logic games against the clock",
                color=COLOR_SUCCESS
            )
            help_embed.add_field(
                name="🎮 Playing",
                value=(
                    "`/games [search]` - Browse games by subject\n"
                    "`/play <game_id>` - Start a game in this channel\n"
                    "`/hint` - Show the hint for the current question\n"
                    "`/status` - Show the current game's progress\n"
                    "`/end` - End the game and save your score"
                ),
                inline=False
            )
            help_embed.add_field(
                name="⚙️ Settings",
                value=(
                    "`/add_game <main> <sub> <name> <file>` - Add a game from a JSON file\n"
                    f"`/set_timer <seconds>` - Default time per question "
                    f"({ConfigManager.MIN_TIME_PER_QUESTION}-{ConfigManager.MAX_TIME_PER_QUESTION}s)\n"
                    "`/set_delay <seconds>` - Pause after a correct answer\n"
                    "`/scores [game_id]` - Show recorded scores"
                ),
                inline=False
            )
            settings = self.config_manager.get_session_settings()
            help_embed.add_field(
                name="🏆 Scoring",
                value=(
                    f"Correct answer: **{settings.points_without_hint}** points, "
                    f"**{settings.points_with_hint}** with the hint shown. "
                    "Wrong answers and expired timers score 0."
                ),
                inline=False
            )
            help_embed.set_footer(text="Answer with the buttons under each question")
            await interaction.response.send_message(embed=help_embed)

        except discord.HTTPException as e:
            logger.error(f"Error in help command: {e}")

    async def handle_games(self, interaction: discord.Interaction, search: str):
        """Handle /games command"""
        try:
            hierarchy = self.data_manager.search_games(search)
            await interaction.response.send_message(embed=build_games_embed(hierarchy, search), ephemeral=True)
        except discord.HTTPException as e:
            logger.error(f"Error in games command: {e}")

    async def handle_play(self, interaction: discord.Interaction, game_id: str):
        """Handle /play command"""
        if interaction.channel is None:
            await self.send_error_response(interaction, "Games can only be played in a channel", "❌ Game Start Failed")
            return

        try:
            await interaction.response.defer(ephemeral=True, thinking=True)
            listener = DiscordSessionListener(self, interaction.channel)
            result = await self.game_controller.start_game(interaction.channel_id, game_id.strip(), listener)

            if result['success']:
                session_info = result['session_info']
                await interaction.followup.send(
                    f"✅ Started **{session_info['game_name']}**: {session_info['total_questions']} questions, "
                    f"{format_time(session_info['time_budget'])} per question",
                    ephemeral=True
                )
            else:
                await self.send_error_response(
                    interaction,
                    result.get('user_message', result.get('error', 'Unknown error')),
                    "❌ Game Start Failed"
                )
        except discord.HTTPException as e:
            logger.error(f"Error in play command: {e}")

    async def handle_hint(self, interaction: discord.Interaction):
        """Handle /hint command"""
        result = await self.game_controller.request_hint(interaction.channel_id)
        if result['success']:
            await self.send_info_response(interaction, result['hint'], "💡 Hint")
        else:
            await self.send_warning_response(interaction, result['user_message'])

    async def handle_end(self, interaction: discord.Interaction):
        """Handle /end command"""
        try:
            await interaction.response.defer(thinking=True)
            result = await self.game_controller.end_game(interaction.channel_id)
            if result['success']:
                await interaction.followup.send(embed=build_end_embed(result))
            else:
                await self.send_info_response(interaction, result['user_message'])
        except discord.HTTPException as e:
            logger.error(f"Error in end command: {e}")

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        try:
            session_info = self.game_controller.get_session_progress(interaction.channel_id)
            if session_info is None:
                embed = discord.Embed(
                    title="ℹ️ No Active Game",
                    description="There is no game running in this channel.",
                    color=COLOR_INFO
                )
                embed.add_field(name="🎯 Start a Game", value="Use `/games` to browse and `/play` to start", inline=False)
                await interaction.response.send_message(embed=embed, ephemeral=True)
                return

            embed = discord.Embed(
                title="▶️ Game Status",
                description=f"**{session_info['game_name']}**",
                color=COLOR_SUCCESS
            )
            embed.add_field(
                name="📊 Progress",
                value=self.game_controller.get_session_status_summary(interaction.channel_id).replace(" | ", "\n"),
                inline=False
            )
            await interaction.response.send_message(embed=embed, ephemeral=True)

        except discord.HTTPException as e:
            logger.error(f"Error in status command: {e}")

    async def handle_add_game(
        self,
        interaction: discord.Interaction,
        main_subject: str,
        sub_subject: str,
        name: str,
        file: discord.Attachment
    ):
        """Handle /add_game command"""
        try:
            raw = await file.read()
            game_data = json.loads(raw.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Rejected game upload '{file.filename}': {e}")
            await self.send_error_response(interaction, f"The file is not valid JSON: {e}", "❌ Invalid File")
            return
        except discord.HTTPException as e:
            logger.error(f"Failed to download attachment '{file.filename}': {e}")
            await self.send_error_response(interaction, "Could not download the attached file", "❌ Upload Failed")
            return

        result = self.data_manager.add_game(main_subject, sub_subject, name, game_data)
        if result['success']:
            await self.send_info_response(interaction, result['user_message'], "✅ Game Added")
        else:
            await self.send_error_response(interaction, result['user_message'], "❌ Game Not Added")

    async def handle_set_timer(self, interaction: discord.Interaction, seconds: int):
        """Handle /set_timer command"""
        result = self.config_manager.set_default_time_per_question(seconds)
        if result['success']:
            await self.send_info_response(
                interaction,
                f"{result['user_message']}\n\n{self.config_manager.get_settings_summary()}",
                "✅ Timer Updated"
            )
        else:
            await self.send_error_response(interaction, result['user_message'], "❌ Configuration Error")

    async def handle_set_delay(self, interaction: discord.Interaction, seconds: float):
        """Handle /set_delay command"""
        result = self.config_manager.set_advance_delay(seconds)
        if result['success']:
            await self.send_info_response(interaction, result['user_message'], "✅ Delay Updated")
        else:
            await self.send_error_response(interaction, result['user_message'], "❌ Configuration Error")

    async def handle_scores(self, interaction: discord.Interaction, game_id: Optional[str]):
        """Handle /scores command"""
        try:
            records = self.score_reporter.get_scores(game_id)
            await interaction.response.send_message(embed=build_scores_embed(records, game_id), ephemeral=True)
        except discord.HTTPException as e:
            logger.error(f"Error in scores command: {e}")

    # Button handlers

    async def handle_answer_button(self, interaction: discord.Interaction, position: int):
        await self._defer_component(interaction)
        result = await self.game_controller.select_answer(interaction.channel_id, position)
        if not result['success']:
            await self.send_warning_response(interaction, result['user_message'])

    async def handle_hint_button(self, interaction: discord.Interaction):
        await self._defer_component(interaction)
        result = await self.game_controller.request_hint(interaction.channel_id)
        if not result['success']:
            await self.send_warning_response(interaction, result['user_message'])

    async def handle_continue_button(self, interaction: discord.Interaction):
        await self._defer_component(interaction)
        result = await self.game_controller.continue_game(interaction.channel_id)
        if not result['success']:
            await self.send_warning_response(interaction, result['user_message'])

    async def handle_play_again_button(self, interaction: discord.Interaction):
        await self._defer_component(interaction)
        result = await self.game_controller.restart_game(interaction.channel_id)
        if not result['success']:
            await self.send_error_response(interaction, result['user_message'], "❌ Restart Failed")
        elif result.get('warning'):
            await self.send_warning_response(interaction, result['warning'])

    async def handle_end_button(self, interaction: discord.Interaction):
        await self._defer_component(interaction)
        result = await self.game_controller.end_game(interaction.channel_id)
        if not result['success']:
            await self.send_info_response(interaction, result['user_message'])
            return
        try:
            await interaction.followup.send(embed=build_end_embed(result))
        except discord.HTTPException as e:
            logger.error(f"Failed to send game end summary: {e}")

    async def _defer_component(self, interaction: discord.Interaction):
        try:
            await interaction.response.defer()
        except discord.HTTPException as e:
            logger.warning(f"Failed to acknowledge button press: {e}")

    # Responses

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send formatted error response to user"""
        await self._send_embed(interaction, discord.Embed(title=title, description=message, color=COLOR_ERROR))

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        """Send formatted info response to user"""
        await self._send_embed(interaction, discord.Embed(title=title, description=message, color=COLOR_INFO))

    async def send_warning_response(self, interaction: discord.Interaction, message: str, title: str = "⚠️ Warning"):
        """Send formatted warning response to user"""
        await self._send_embed(interaction, discord.Embed(title=title, description=message, color=COLOR_WARNING))

    async def _send_embed(self, interaction: discord.Interaction, embed: discord.Embed):
        try:
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send response to user")


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = LogicGamesBot(config)

    try:
        logger.info("Starting Logic Games Bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
