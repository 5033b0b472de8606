"""
Quiz session controller.
Owns the active session, the play-streak history and the two question timers,
and exposes the engine operations to a host (Discord bot, tests, ...).
"""
import logging
import random
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Union

from .bookmark_store import BookmarkStore
from .catalog import QuestionCatalog
from .config_manager import ConfigManager
from .data_manager import DataManager
from .models import Phase, Question, QuizMode, QuizSession
from .quiz_engine import AsyncioScheduler, QuizEngine, QuizTimer, Scheduler, progress_percentage

ALL_QUESTIONS = "all"

COUNTDOWN_INTERVAL_MS = 1000


class QuizEvent(Enum):
    """Notifications sent to listeners after a state change."""
    QUESTION_STARTED = "question_started"
    TICK = "tick"
    ANSWERED = "answered"
    SKIP_REQUESTED = "skip_requested"
    SKIP_CANCELLED = "skip_cancelled"
    COMPLETED = "completed"
    LEVEL_UP = "level_up"
    RESET = "reset"


class QuizControllerError(Exception):
    """Base exception for quiz controller errors."""
    pass


class CatalogNotReadyError(QuizControllerError):
    """Raised when a session is requested before a catalog has been loaded."""
    pass


class EmptySelectionError(QuizControllerError):
    """Raised when the requested selection holds no questions."""
    pass


class SessionNotFoundError(QuizControllerError):
    """Raised when attempting to operate without an active session."""
    pass


class InvalidSessionStateError(QuizControllerError):
    """Raised when the session is in an invalid state for the requested operation."""
    pass


Listener = Callable[[QuizEvent, Optional[QuizSession]], Any]


class QuizController:
    """
    Orchestrates one player's quiz flow.

    Exactly one countdown is armed while a question is being answered and
    exactly one auto-advance is armed while feedback is shown. Every
    transition out of those phases cancels the corresponding timer.
    """

    def __init__(
        self,
        data_manager: DataManager,
        config_manager: ConfigManager,
        bookmark_store: BookmarkStore,
        scheduler: Optional[Scheduler] = None,
        rng: Optional[random.Random] = None,
        owner: str = "quiz"
    ):
        """
        Initialize the quiz controller.

        Args:
            data_manager: Source of the question catalog
            config_manager: Source of quiz settings
            bookmark_store: Persistent bookmark list
            scheduler: Timer capability, defaults to the asyncio loop
            rng: Randomness source for question selection
            owner: Label used in timer logs
        """
        self.logger = logging.getLogger(__name__)
        self.data_manager = data_manager
        self.config_manager = config_manager
        self.bookmark_store = bookmark_store
        self.quiz_engine = QuizEngine(config_manager.get_quiz_settings(), rng)
        self.owner = owner

        scheduler = scheduler or AsyncioScheduler()
        self._countdown = QuizTimer(scheduler, "countdown", owner)
        self._auto_advance = QuizTimer(scheduler, "auto_advance", owner)

        self.session: Optional[QuizSession] = None
        self._history: set = set()
        self._listeners: List[Listener] = []

    # Catalog

    async def load_catalog(self) -> QuestionCatalog:
        return await self.data_manager.load_catalog()

    async def retry(self) -> QuestionCatalog:
        return await self.data_manager.retry()

    @property
    def catalog(self) -> Optional[QuestionCatalog]:
        return self.data_manager.catalog

    @property
    def history(self) -> FrozenSet[str]:
        return frozenset(self._history)

    def _require_catalog(self) -> QuestionCatalog:
        catalog = self.data_manager.catalog
        if catalog is None:
            raise CatalogNotReadyError(
                f"Question catalog is not available (state: {self.data_manager.load_state.value})"
            )
        return catalog

    def _require_session(self) -> QuizSession:
        if self.session is None:
            raise SessionNotFoundError("No active quiz session")
        return self.session

    # Listeners

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, event: QuizEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, self.session)
            except Exception as e:
                self.logger.error(f"Listener failed on {event.value} for {self.owner}: {e}", exc_info=True)

    # Timers

    def _arm_countdown(self) -> None:
        self._countdown.start(COUNTDOWN_INTERVAL_MS, self.tick)

    def _arm_auto_advance(self) -> None:
        self._auto_advance.start(self.quiz_engine.settings.auto_advance_delay_ms, self.advance)

    def _cancel_timers(self, reason: str) -> None:
        self._countdown.cancel(reason)
        self._auto_advance.cancel(reason)

    @property
    def countdown_active(self) -> bool:
        return self._countdown.is_active

    @property
    def auto_advance_active(self) -> bool:
        return self._auto_advance.is_active

    # Session lifecycle

    def start_session(
        self,
        mode: Union[QuizMode, str],
        subject: Optional[str] = None,
        topic: Optional[str] = None,
        desired_count: Union[int, str, None] = None
    ) -> QuizSession:
        """
        Start a new quiz instance.

        Args:
            mode: QuizMode or its string value
            subject: Subject filter, required for topic mode
            topic: Topic filter, required for topic mode
            desired_count: Topic quiz size, "all" for the whole topic,
                None for the configured default. Ignored in mixed mode.

        Returns:
            The new session, positioned on its first question

        Raises:
            CatalogNotReadyError: If no catalog is loaded
            EmptySelectionError: If the selection holds no questions
        """
        catalog = self._require_catalog()
        mode = QuizMode(mode)
        if mode is QuizMode.TOPIC and (not subject or not topic):
            raise EmptySelectionError("Topic quizzes need both a subject and a topic")

        self._cancel_timers("new session")
        self.quiz_engine.settings = self.config_manager.get_quiz_settings()

        if desired_count == ALL_QUESTIONS:
            requested = None
        elif desired_count is None:
            requested = self.quiz_engine.settings.topic_question_count
        else:
            requested = int(desired_count)
        count = self.quiz_engine.desired_count_for(mode, requested)

        working_set, self._history = self.quiz_engine.select_pool(
            catalog, mode, subject, topic, self._history, count
        )
        if not working_set:
            self.logger.warning(f"No questions for {mode.value} quiz (subject={subject!r}, topic={topic!r})")
            raise EmptySelectionError(
                f"No questions available for {subject} / {topic}" if mode is QuizMode.TOPIC
                else "No questions available for a mixed quiz"
            )

        session = self.quiz_engine.new_session(
            mode, working_set, subject=subject, topic=topic, desired_count=count
        )
        self.logger.info(
            f"Started {mode.value} quiz for {self.owner}: {len(working_set)} questions"
            + (f" from {subject} / {topic}" if mode is QuizMode.TOPIC else "")
        )
        self._begin(session, QuizEvent.QUESTION_STARTED)
        return session

    def _begin(self, session: QuizSession, event: QuizEvent) -> None:
        self.session = session
        self._arm_countdown()
        self._notify(event)

    def tick(self) -> QuizSession:
        """One countdown second; fired by the countdown timer."""
        session = self._require_session()
        if session.phase is not Phase.ANSWERING:
            return session

        self.session = self.quiz_engine.tick(session)
        if self.session.phase is Phase.ANSWERING:
            self._arm_countdown()
            self._notify(QuizEvent.TICK)
        else:
            self.logger.debug(f"Time expired on question {session.index + 1} for {self.owner}")
            self._countdown.cancel("time expired")
            self._arm_auto_advance()
            self._notify(QuizEvent.ANSWERED)
        return self.session

    def submit_answer(self, answer: Optional[str]) -> QuizSession:
        session = self._require_session()
        if session.phase is not Phase.ANSWERING:
            self.logger.debug(f"Ignoring answer for {self.owner} in phase {session.phase.value}")
            return session

        self._countdown.cancel("answered")
        self.session = self.quiz_engine.submit_answer(session, answer)
        self._arm_auto_advance()
        self._notify(QuizEvent.ANSWERED)
        return self.session

    def advance(self) -> QuizSession:
        """Next question (explicit or automatic), or completion after the last one."""
        session = self._require_session()
        if session.phase is not Phase.FEEDBACK:
            self.logger.debug(f"Ignoring advance for {self.owner} in phase {session.phase.value}")
            return session

        self._cancel_timers("advanced")
        return self._after_advance(self.quiz_engine.advance(session))

    def _after_advance(self, session: QuizSession) -> QuizSession:
        self.session = session
        if session.phase is Phase.COMPLETED:
            self.logger.info(
                f"Quiz completed for {self.owner}: {session.score}/{session.total_questions}"
                + (f", level {session.level} {'passed' if session.passed else 'not passed'}"
                   if session.mode is QuizMode.MIXED else "")
            )
            self._notify(QuizEvent.COMPLETED)
        else:
            self._arm_countdown()
            self._notify(QuizEvent.QUESTION_STARTED)
        return session

    def request_skip(self) -> QuizSession:
        session = self._require_session()
        updated = self.quiz_engine.request_skip(session)
        if updated is not session:
            self.session = updated
            self._notify(QuizEvent.SKIP_REQUESTED)
        return self.session

    def cancel_skip(self) -> QuizSession:
        session = self._require_session()
        updated = self.quiz_engine.cancel_skip(session)
        if updated is not session:
            self.session = updated
            self._notify(QuizEvent.SKIP_CANCELLED)
        return self.session

    def confirm_skip(self) -> QuizSession:
        session = self._require_session()
        if not session.skip_pending or session.phase is not Phase.ANSWERING:
            return session

        self._cancel_timers("skipped")
        return self._after_advance(self.quiz_engine.confirm_skip(session))

    def progress_level(self) -> QuizSession:
        """
        Start the next mixed level after a passed session.

        Returns:
            The new session, or the unchanged session when the level gate is not met

        Raises:
            InvalidSessionStateError: If the session is not completed
        """
        session = self._require_session()
        if session.phase is not Phase.COMPLETED:
            raise InvalidSessionStateError("Levels can only change after the quiz is completed")

        self.quiz_engine.settings = self.config_manager.get_quiz_settings()
        updated, self._history = self.quiz_engine.progress_level(session, self._require_catalog(), self._history)
        if updated is session:
            return session

        if updated.phase is Phase.COMPLETED:
            self.session = updated
            self._notify(QuizEvent.COMPLETED)
            return updated

        self._begin(updated, QuizEvent.LEVEL_UP)
        return updated

    def retry_session(self) -> QuizSession:
        """
        Play the same selection again: a failed level, or more questions of a topic.

        Raises:
            InvalidSessionStateError: If the session is not completed
            EmptySelectionError: If the selection no longer holds questions
        """
        session = self._require_session()
        if session.phase is not Phase.COMPLETED:
            raise InvalidSessionStateError("A quiz can only be retried after it is completed")

        self.quiz_engine.settings = self.config_manager.get_quiz_settings()
        updated, self._history = self.quiz_engine.retry(session, self._require_catalog(), self._history)
        if updated is session:
            raise EmptySelectionError("No questions available for this selection")

        self.logger.info(f"Retrying {session.mode.value} quiz for {self.owner} at level {session.level}")
        self._begin(updated, QuizEvent.QUESTION_STARTED)
        return updated

    def reset_session(self) -> None:
        """Tear down timers and session state, back to mode selection."""
        self._cancel_timers("reset")
        self.session = None
        self._history = set()
        self.logger.info(f"Quiz session reset for {self.owner}")
        self._notify(QuizEvent.RESET)

    def close(self) -> None:
        """Stop timers and detach listeners without notifying them."""
        self._cancel_timers("shutdown")
        self._listeners.clear()

    # Bookmarks

    def toggle_bookmark(self, question: Optional[Question] = None) -> List[Question]:
        """Toggle a bookmark, defaulting to the current question."""
        if question is None:
            question = self._require_session().current_question
            if question is None:
                raise InvalidSessionStateError("No current question to bookmark")
        return self.bookmark_store.toggle(question)

    def is_bookmarked(self, question: Question) -> bool:
        return self.bookmark_store.contains(question)

    # Status

    def get_session_progress(self) -> Optional[Dict[str, Any]]:
        """
        Get progress information for the active session.

        Returns:
            Dictionary with progress info, None if no active session
        """
        session = self.session
        if session is None:
            return None
        return {
            'mode': session.mode.value,
            'subject': session.subject,
            'topic': session.topic,
            'phase': session.phase.value,
            'current_question': min(session.index + 1, session.total_questions),
            'total_questions': session.total_questions,
            'progress_percentage': progress_percentage(session),
            'score': session.score,
            'level': session.level,
            'seconds_remaining': session.seconds_remaining,
            'passed': session.passed,
            'max_level_reached': session.max_level_reached,
            'start_time': session.start_time,
        }
