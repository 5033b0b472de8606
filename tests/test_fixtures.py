"""
Test fixtures and sample data for Sheet Quiz Bot tests.
"""
import asyncio
import functools
import random
from typing import Callable, Dict, List, Optional, Sequence
from unittest.mock import AsyncMock, Mock

import discord

from sheetquiz.catalog import QuestionCatalog
from sheetquiz.models import Question, QuizSettings

CSV_HEADER = "Question,Option 1,Option 2,Option 3,Option 4,Answer,Explanation,Topic,Subject"


def async_test(coro):
    """Run an async test method on a fresh event loop."""
    @functools.wraps(coro)
    def wrapper(*args, **kwargs):
        loop = asyncio.new_event_loop()
        try:
            return loop.run_until_complete(coro(*args, **kwargs))
        finally:
            loop.close()
    return wrapper


class FakeHandle:
    """Cancellable handle returned by FakeScheduler."""

    def __init__(self, due_ms: int, callback: Callable):
        self.due_ms = due_ms
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    """Scheduler on a virtual clock; callbacks run only when ``advance`` is called."""

    def __init__(self):
        self.now_ms = 0
        self.handles: List[FakeHandle] = []

    def after(self, delay_ms: int, callback: Callable) -> FakeHandle:
        handle = FakeHandle(self.now_ms + delay_ms, callback)
        self.handles.append(handle)
        return handle

    def pending(self) -> List[FakeHandle]:
        return [h for h in self.handles if not h.cancelled and not h.fired]

    def advance(self, ms: int) -> None:
        """Move the clock forward, firing due callbacks in order."""
        target = self.now_ms + ms
        while True:
            due = [h for h in self.pending() if h.due_ms <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.due_ms)
            self.now_ms = handle.due_ms
            handle.fired = True
            handle.callback()
        self.now_ms = target


class TestFixtures:
    """Centralized test fixtures for all test modules."""

    @staticmethod
    def make_row(
        question: str,
        options: Sequence[str],
        answer: str,
        explanation: str = "",
        topic: str = "Algebra",
        subject: str = "Math"
    ) -> str:
        fields = [question, *options, answer, explanation, topic, subject]
        return ",".join(f'"{f}"' if "," in f else f for f in fields)

    @staticmethod
    def create_sample_rows() -> List[str]:
        """Rows covering two subjects and three topics."""
        return [
            TestFixtures.make_row("What is 2+2?", ["3", "4", "5", "6"], "4", "Basic addition", "Arithmetic", "Math"),
            TestFixtures.make_row("What is 5*5?", ["10", "20", "25", "30"], "25", "Multiplication", "Arithmetic", "Math"),
            TestFixtures.make_row("Solve x+1=3", ["1", "2", "3", "4"], "2", "", "Algebra", "Math"),
            TestFixtures.make_row("What is H2O?", ["Water", "Salt", "Gold", "Air"], "Water", "", "Chemistry", "Science"),
            TestFixtures.make_row("What pulls objects down?", ["Gravity", "Magnetism", "Friction", "Light"],
                                  "Gravity", "Newton", "Physics", "Science"),
        ]

    @staticmethod
    def create_sample_csv(rows: Optional[List[str]] = None) -> str:
        rows = TestFixtures.create_sample_rows() if rows is None else rows
        return "\n".join([CSV_HEADER, *rows])

    @staticmethod
    def create_generated_rows(topics: Dict[str, Sequence[str]], per_topic: int) -> List[str]:
        """Generate ``per_topic`` valid rows for every (subject, topic)."""
        rows = []
        for subject, topic_names in topics.items():
            for topic in topic_names:
                for i in range(per_topic):
                    options = [f"{topic} answer {i}", "Wrong A", "Wrong B", "Wrong C"]
                    rows.append(TestFixtures.make_row(
                        f"{subject} {topic} question {i}?", options, options[0], "", topic, subject
                    ))
        return rows

    @staticmethod
    def create_sample_catalog(rows: Optional[List[str]] = None, seed: int = 7, **kwargs) -> QuestionCatalog:
        rows = TestFixtures.create_sample_rows() if rows is None else rows
        return QuestionCatalog.build(rows, rng=random.Random(seed), **kwargs)

    @staticmethod
    def create_large_catalog(per_topic: int = 10) -> QuestionCatalog:
        """Catalog big enough for several mixed levels."""
        rows = TestFixtures.create_generated_rows(
            {"Math": ["Algebra", "Geometry"], "Science": ["Physics", "Biology"], "English": ["Grammar"]},
            per_topic
        )
        return QuestionCatalog.build(rows, rng=random.Random(3))

    @staticmethod
    def create_sample_question(text: str = "What is 2+2?", subject: str = "Math", topic: str = "Arithmetic") -> Question:
        return Question(
            text=text,
            options=("3", "4", "5", "6"),
            correct_answer="4",
            explanation="Basic addition",
            subject=subject,
            topic=topic,
        )

    @staticmethod
    def create_small_settings(**overrides) -> QuizSettings:
        """Settings scaled down so full sessions stay short in tests."""
        values = dict(
            source_url="https://example.com/sheet.csv",
            timer_duration=5,
            auto_advance_delay_ms=3000,
            mixed_question_count=4,
            topic_question_count=2,
            pass_threshold=3,
            max_level=3,
        )
        values.update(overrides)
        return QuizSettings(**values)


class MockDiscordObjects:
    """Mock Discord objects for testing bot functionality."""

    @staticmethod
    def create_mock_interaction(channel_id: int = 12345, user_id: int = 67890) -> Mock:
        """Create mock Discord interaction."""
        interaction = Mock(spec=discord.Interaction)
        interaction.channel_id = channel_id
        interaction.user = Mock()
        interaction.user.id = user_id
        interaction.response = Mock()
        interaction.response.is_done.return_value = False
        interaction.response.send_message = AsyncMock()
        interaction.response.defer = AsyncMock()
        interaction.followup = Mock()
        interaction.followup.send = AsyncMock()
        interaction.original_response = AsyncMock(return_value=MockDiscordObjects.create_mock_message())
        return interaction

    @staticmethod
    def create_mock_message(message_id: int = 11111, content: str = "") -> Mock:
        """Create mock Discord message."""
        message = Mock(spec=discord.Message)
        message.id = message_id
        message.content = content
        message.edit = AsyncMock()
        message.delete = AsyncMock()
        return message

    @staticmethod
    def create_http_exception(status: int = 500, message: str = "HTTP error") -> discord.HTTPException:
        response = Mock()
        response.status = status
        response.reason = message
        return discord.HTTPException(response, message)


class AsyncTestHelpers:
    """Helper functions for async testing."""

    @staticmethod
    async def run_with_timeout(coro, timeout: float = 5.0):
        return await asyncio.wait_for(coro, timeout=timeout)

    @staticmethod
    async def drain_tasks():
        """Let scheduled tasks run to completion."""
        for _ in range(5):
            await asyncio.sleep(0)
