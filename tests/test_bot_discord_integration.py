"""
Unit tests for the Discord front end: embeds, views, listener and command handlers.
"""
import asyncio
import json
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, Mock, patch

import discord

from logic_games.bot import (
    AnswerButton,
    ContinueButton,
    DiscordSessionListener,
    EndButton,
    HintButton,
    LogicGamesBot,
    PlayAgainButton,
    QuestionView,
    ReportView,
    build_games_embed,
    build_question_embed,
    build_report_embed,
    format_time,
)
from logic_games.models import ScoreEntry, SessionSummary
from tests.test_fixtures import TestFixtures


def create_mock_interaction(channel_id=1):
    message = Mock()
    message.edit = AsyncMock()

    interaction = Mock()
    interaction.channel_id = channel_id
    interaction.channel = Mock()
    interaction.channel.send = AsyncMock(return_value=message)
    interaction.response = Mock()
    interaction.response.defer = AsyncMock()
    interaction.response.send_message = AsyncMock()
    interaction.response.is_done = Mock(return_value=True)
    interaction.followup = Mock()
    interaction.followup.send = AsyncMock()
    return interaction, message


class TestEmbedBuilders(unittest.TestCase):
    """Test cases for embed formatting helpers."""

    def test_format_time(self):
        self.assertEqual(format_time(125), "2:05")
        self.assertEqual(format_time(0), "0:00")
        self.assertEqual(format_time(-3), "0:00")

    def test_report_embed(self):
        entries = [
            ScoreEntry(question_id=1, points=10, used_hint=False, correct=True, time_remaining=50),
            ScoreEntry(question_id=2, points=10, used_hint=False, correct=True, time_remaining=40),
            ScoreEntry(question_id=3, points=10, used_hint=False, correct=True, time_remaining=30),
        ]
        summary = SessionSummary.from_entries(TestFixtures.create_sample_game(), entries, 10)

        embed = build_report_embed(summary)

        self.assertEqual(embed.title, "🎉 Outstanding!")
        self.assertEqual(embed.fields[0].value, "30/30 (100.0%)")
        self.assertIn("██████████ 10", embed.fields[3].value)

    def test_games_embed_lists_games_per_sub_subject(self):
        embed = build_games_embed(TestFixtures.create_sample_document()["main_subjects"])

        self.assertEqual(len(embed.fields), 2)
        self.assertEqual(embed.fields[0].name, "Logic › Deduction")
        self.assertIn("`game_logic_1`", embed.fields[0].value)

    def test_games_embed_without_results(self):
        embed = build_games_embed([], "zebra")
        self.assertEqual(embed.description, "No games found.")


class TestDiscordFrontEnd(unittest.IsolatedAsyncioTestCase):
    """Test cases for views, the session listener and command handlers."""

    async def asyncSetUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        data_file = TestFixtures.write_json(
            self.temp_dir / "game_data.json", TestFixtures.create_sample_document()
        )
        self.score_file = self.temp_dir / "score_report.json"
        config = {
            'game': {
                'game_data_file': str(data_file),
                'score_report_file': str(self.score_file),
                'advance_delay': 0
            }
        }
        self.bot = LogicGamesBot(config)
        self.bot.setup_components()

    async def asyncTearDown(self):
        await self.bot.game_controller.shutdown()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    async def start_game(self, game_id="game_logic_1"):
        interaction, message = create_mock_interaction()
        await self.bot.handle_play(interaction, game_id)
        return interaction, message

    def session(self, channel_id=1):
        return self.bot.game_controller.get_session(channel_id)

    async def test_components_follow_config(self):
        self.assertEqual(self.bot.config_manager.get_advance_delay(), 0.0)
        self.assertEqual(self.bot.score_reporter.score_file, Path(str(self.score_file)).resolve())

    async def test_setup_logs_configuration_warnings(self):
        config = {
            'game': {
                'game_data_file': str(self.temp_dir / "missing_dir" / "game_data.json"),
                'score_report_file': str(self.score_file),
                'default_time_per_question': 15
            }
        }
        bot = LogicGamesBot(config)

        with self.assertLogs('logic_games.bot', level='WARNING') as logs:
            bot.setup_components()

        output = "\n".join(logs.output)
        self.assertIn("Short default timer", output)
        await bot.game_controller.shutdown()

    async def test_play_sends_first_question(self):
        interaction, _ = await self.start_game()

        interaction.response.defer.assert_awaited_once()
        interaction.channel.send.assert_awaited_once()
        kwargs = interaction.channel.send.await_args.kwargs
        self.assertEqual(kwargs['embed'].title, "🧩 Question 1/3")
        self.assertIsInstance(kwargs['view'], QuestionView)
        interaction.followup.send.assert_awaited_once()
        self.assertIn("Syllogisms and Sequences", interaction.followup.send.await_args.args[0])

    async def test_play_unknown_game_reports_error(self):
        interaction, _ = await self.start_game("missing")

        interaction.channel.send.assert_not_awaited()
        embed = interaction.followup.send.await_args.kwargs['embed']
        self.assertEqual(embed.title, "❌ Game Start Failed")

    async def test_question_view_layout(self):
        await self.start_game()
        session = self.session()

        view = QuestionView(self.bot, session)

        answer_buttons = [child for child in view.children if isinstance(child, AnswerButton)]
        self.assertEqual(len(answer_buttons), 4)
        self.assertTrue(all(not button.disabled for button in answer_buttons))
        self.assertEqual(answer_buttons[0].label[:3], "A. ")
        hint_buttons = [child for child in view.children if isinstance(child, HintButton)]
        self.assertEqual(hint_buttons[0].label, "💡 Hint (-5 points)")
        self.assertTrue(any(isinstance(child, EndButton) for child in view.children))

    async def test_question_embed_shows_instructions_and_hint(self):
        await self.start_game()
        session = self.session()
        await session.request_hint()

        embed = build_question_embed(session)
        names = [field.name for field in embed.fields]

        self.assertIn("📋 Instructions", names)
        self.assertIn("💡 Hint", names)
        hint_button = next(child for child in QuestionView(self.bot, session).children if isinstance(child, HintButton))
        self.assertTrue(hint_button.disabled)

    async def test_wrong_answer_shows_continue(self):
        _, message = await self.start_game()
        session = self.session()
        wrong = (session.current_question.correct_position + 1) % 4
        interaction, _ = create_mock_interaction()

        await self.bot.handle_answer_button(interaction, wrong)

        interaction.response.defer.assert_awaited_once()
        kwargs = message.edit.await_args.kwargs
        self.assertTrue(kwargs['embed'].title.startswith("❌ Incorrect"))
        self.assertIn("📖 Solution", [field.name for field in kwargs['embed'].fields])
        view = kwargs['view']
        self.assertTrue(any(isinstance(child, ContinueButton) for child in view.children))
        answer_buttons = [child for child in view.children if isinstance(child, AnswerButton)]
        self.assertTrue(all(button.disabled for button in answer_buttons))
        self.assertEqual(answer_buttons[wrong].style, discord.ButtonStyle.danger)

    async def test_correct_answer_moves_to_next_question(self):
        play_interaction, _ = await self.start_game()
        session = self.session()
        interaction, _ = create_mock_interaction()

        await self.bot.handle_answer_button(interaction, session.current_question.correct_position)
        await asyncio.sleep(0.02)

        self.assertEqual(play_interaction.channel.send.await_count, 2)
        self.assertEqual(play_interaction.channel.send.await_args.kwargs['embed'].title, "🧩 Question 2/3")

    async def test_report_then_end_saves_score(self):
        play_interaction, _ = await self.start_game("game_no_timer")
        session = self.session()
        await self.bot.handle_answer_button(create_mock_interaction()[0], session.current_question.correct_position)
        await asyncio.sleep(0.02)

        report_kwargs = play_interaction.channel.send.await_args.kwargs
        self.assertIsInstance(report_kwargs['view'], ReportView)
        self.assertTrue(any(isinstance(child, PlayAgainButton) for child in report_kwargs['view'].children))

        end_interaction, _ = create_mock_interaction()
        await self.bot.handle_end_button(end_interaction)

        embed = end_interaction.followup.send.await_args.kwargs['embed']
        self.assertEqual(embed.title, "🛑 Game Ended")
        self.assertEqual(len(self.bot.score_reporter.get_scores()), 1)
        self.assertIsNone(self.session())

    async def test_hint_command(self):
        await self.start_game()
        interaction, _ = create_mock_interaction()

        await self.bot.handle_hint(interaction)

        embed = interaction.followup.send.await_args.kwargs['embed']
        self.assertEqual(embed.title, "💡 Hint")
        self.assertTrue(self.session().state.hint_visible)

    async def test_end_command_without_game(self):
        interaction, _ = create_mock_interaction()

        await self.bot.handle_end(interaction)

        embed = interaction.followup.send.await_args.kwargs['embed']
        self.assertIn("No game is running", embed.description)

    async def test_set_timer_command(self):
        interaction, _ = create_mock_interaction()

        await self.bot.handle_set_timer(interaction, 5)

        embed = interaction.followup.send.await_args.kwargs['embed']
        self.assertEqual(embed.title, "❌ Configuration Error")
        self.assertEqual(self.bot.config_manager.get_default_time_per_question(), 120)

    async def test_add_game_command(self):
        interaction, _ = create_mock_interaction()
        attachment = Mock()
        attachment.filename = "game.json"
        attachment.read = AsyncMock(
            return_value=json.dumps(TestFixtures.create_valid_game_upload()).encode('utf-8')
        )

        await self.bot.handle_add_game(interaction, "Puzzles", "Grids", "Uploaded", attachment)

        embed = interaction.followup.send.await_args.kwargs['embed']
        self.assertEqual(embed.title, "✅ Game Added")
        self.assertIn("Puzzles", self.bot.data_manager.get_main_subjects())

    async def test_add_game_command_rejects_bad_json(self):
        interaction, _ = create_mock_interaction()
        attachment = Mock()
        attachment.filename = "game.json"
        attachment.read = AsyncMock(return_value=b"{oops")

        await self.bot.handle_add_game(interaction, "Puzzles", "Grids", "Uploaded", attachment)

        embed = interaction.followup.send.await_args.kwargs['embed']
        self.assertEqual(embed.title, "❌ Invalid File")


class TestDiscordSessionListener(unittest.IsolatedAsyncioTestCase):
    """Test cases for timer tick throttling and Discord error handling."""

    async def asyncSetUp(self):
        self.message = Mock()
        self.message.edit = AsyncMock()
        self.channel = Mock()
        self.channel.send = AsyncMock(return_value=self.message)
        self.listener = DiscordSessionListener(Mock(), self.channel)
        self.listener.message = self.message
        self.session = Mock()

    async def test_tick_throttling(self):
        with patch('logic_games.bot.build_question_embed', return_value=discord.Embed()):
            await self.listener.on_timer_tick(self.session, 57)
            self.assertEqual(self.message.edit.await_count, 0)
            await self.listener.on_timer_tick(self.session, 50)
            self.assertEqual(self.message.edit.await_count, 1)
            await self.listener.on_timer_tick(self.session, 3)
            self.assertEqual(self.message.edit.await_count, 2)
            await self.listener.on_timer_tick(self.session, 0)
            self.assertEqual(self.message.edit.await_count, 2)

    async def test_http_errors_are_logged_not_raised(self):
        response = Mock(status=500, reason="Server Error")
        self.message.edit.side_effect = discord.HTTPException(response, "boom")

        with self.assertLogs('logic_games.bot', level='WARNING'):
            await self.listener.on_session_ended(self.session, {})

        self.assertIsNone(self.listener.message)


if __name__ == '__main__':
    unittest.main()
