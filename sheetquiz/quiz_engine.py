"""
Quiz engine core logic.
Handles question pool selection, the timed question state machine,
level progression and the timers that drive them.
"""
import asyncio
import dataclasses
import logging
import random
import time
from typing import Any, Callable, Iterable, List, Optional, Set, Tuple

from .catalog import QuestionCatalog
from .models import Phase, Question, QuizMode, QuizSession, QuizSettings

# Set up logger for engine and timer operations
logger = logging.getLogger(__name__)


class TimerLifecycleLogger:
    """Structured logging for timer lifecycle events."""

    @staticmethod
    def log_timer_started(owner: str, timer_name: str, delay_ms: int) -> None:
        logger.debug(
            f"Timer lifecycle: STARTED - {owner}/{timer_name}, Delay {delay_ms}ms",
            extra={
                'event_type': 'timer_started',
                'owner': owner,
                'timer_name': timer_name,
                'delay_ms': delay_ms,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_fired(owner: str, timer_name: str) -> None:
        logger.debug(
            f"Timer lifecycle: FIRED - {owner}/{timer_name}",
            extra={
                'event_type': 'timer_fired',
                'owner': owner,
                'timer_name': timer_name,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_cancelled(owner: str, timer_name: str, reason: str = None) -> None:
        logger.debug(
            f"Timer lifecycle: CANCELLED - {owner}/{timer_name}" + (f" ({reason})" if reason else ""),
            extra={
                'event_type': 'timer_cancelled',
                'owner': owner,
                'timer_name': timer_name,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_race_condition_detected(owner: str, timer_name: str, details: str) -> None:
        logger.warning(
            f"Timer lifecycle: RACE_CONDITION - {owner}/{timer_name}: {details}",
            extra={
                'event_type': 'timer_race_condition',
                'owner': owner,
                'timer_name': timer_name,
                'details': details,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_error(owner: str, timer_name: str, error_message: str) -> None:
        logger.error(
            f"Timer lifecycle: ERROR - {owner}/{timer_name}: {error_message}",
            extra={
                'event_type': 'timer_error',
                'owner': owner,
                'timer_name': timer_name,
                'error_message': error_message,
                'timestamp': time.time()
            },
            exc_info=True
        )


class Scheduler:
    """
    Capability for delayed callbacks.

    ``after`` returns a handle whose ``cancel()`` stops the callback.
    """

    def after(self, delay_ms: int, callback: Callable[[], Any]) -> Any:
        raise NotImplementedError


class AsyncioScheduler(Scheduler):
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def after(self, delay_ms: int, callback: Callable[[], Any]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay_ms / 1000, callback)


class QuizTimer:
    """A single cancellable timer slot; at most one callback is pending."""

    def __init__(self, scheduler: Scheduler, name: str, owner: str = "quiz"):
        self._scheduler = scheduler
        self._handle = None
        self.name = name
        self.owner = owner

    def start(self, delay_ms: int, callback: Callable[[], Any]) -> None:
        """Arm the timer, replacing any pending callback."""
        if self._handle is not None:
            TimerLifecycleLogger.log_race_condition_detected(
                self.owner, self.name, "timer armed while a callback was still pending"
            )
            self.cancel("replaced")

        def fire():
            self._handle = None
            TimerLifecycleLogger.log_timer_fired(self.owner, self.name)
            try:
                callback()
            except Exception as e:
                TimerLifecycleLogger.log_timer_error(self.owner, self.name, str(e))

        self._handle = self._scheduler.after(delay_ms, fire)
        TimerLifecycleLogger.log_timer_started(self.owner, self.name, delay_ms)

    def cancel(self, reason: str = None) -> bool:
        """
        Cancel the pending callback.

        Returns:
            True if a callback was pending, False otherwise
        """
        if self._handle is None:
            return False
        self._handle.cancel()
        self._handle = None
        TimerLifecycleLogger.log_timer_cancelled(self.owner, self.name, reason)
        return True

    @property
    def is_active(self) -> bool:
        return self._handle is not None


def timer_color(seconds_remaining: int) -> int:
    """Embed colour for the countdown: green, then orange, then red."""
    if seconds_remaining > 20:
        return 0x22c55e
    if seconds_remaining > 10:
        return 0xf97316
    return 0xef4444


def progress_percentage(session: QuizSession) -> int:
    """Percentage of the working set reached, counting the current question."""
    if not session.working_set:
        return 0
    position = min(session.index + 1, len(session.working_set))
    return round(position / len(session.working_set) * 100)


class QuizEngine:
    """
    Pool selection and pure session transitions.

    Every transition takes a QuizSession and returns a QuizSession. Events that
    do not apply to the current phase return the session unchanged.
    """

    def __init__(self, settings: Optional[QuizSettings] = None, rng: Optional[random.Random] = None):
        self.settings = settings or QuizSettings()
        self.rng = rng or random.Random()

    # Pool selection

    def filter_pool(
        self,
        catalog: QuestionCatalog,
        mode: QuizMode,
        subject: Optional[str] = None,
        topic: Optional[str] = None
    ) -> List[Question]:
        """Questions matching the mode's filter."""
        if mode is QuizMode.MIXED:
            excluded = set(self.settings.mixed_excluded_subjects)
            return [q for q in catalog.questions if q.subject not in excluded]
        return [q for q in catalog.questions if q.subject == subject and q.topic == topic]

    def select_pool(
        self,
        catalog: QuestionCatalog,
        mode: QuizMode,
        subject: Optional[str],
        topic: Optional[str],
        history: Iterable[str],
        desired_count: Optional[int]
    ) -> Tuple[List[Question], Set[str]]:
        """
        Choose the working set for a new quiz instance.

        Args:
            catalog: Loaded question catalog
            mode: Quiz mode
            subject: Subject filter (topic mode)
            topic: Topic filter (topic mode)
            history: Question texts already served in this play streak
            desired_count: Questions wanted, or None for the whole pool

        Returns:
            Tuple of (working set, updated history). An empty working set
            means nothing matched the selection.
        """
        history = set(history)
        pool = self.filter_pool(catalog, mode, subject, topic)
        count = len(pool) if desired_count is None else desired_count

        available = [q for q in pool if q.text not in history]

        if len(available) < count and history:
            logger.info(
                f"Question history reset for {mode.value} quiz. Previous unique pool exhausted "
                f"({len(available)} unseen of {len(pool)}, {count} wanted)"
            )
            history = set()
            available = list(pool)

        if not available:
            return [], history

        shuffled = self.shuffle_questions(available)
        selected = self.limit_question_count(shuffled, count)
        history.update(q.text for q in selected)
        return selected, history

    def shuffle_questions(self, questions: List[Question]) -> List[Question]:
        """
        Shuffle questions uniformly.

        Returns:
            New list with questions in random order
        """
        shuffled = list(questions)
        self.rng.shuffle(shuffled)
        return shuffled

    def limit_question_count(self, questions: List[Question], count: int) -> List[Question]:
        """
        Limit the number of questions to the specified count.

        Note:
            If count is greater than available questions, returns all questions.
            If count is less than 1, returns empty list.
        """
        if count < 1:
            return []
        return questions[:count]

    def desired_count_for(self, mode: QuizMode, requested: Optional[int] = None) -> Optional[int]:
        """Mixed mode always uses the configured count; topic mode honours the request."""
        if mode is QuizMode.MIXED:
            return self.settings.mixed_question_count
        return requested

    # Session transitions

    def new_session(
        self,
        mode: QuizMode,
        working_set: Iterable[Question],
        subject: Optional[str] = None,
        topic: Optional[str] = None,
        desired_count: Optional[int] = None,
        level: int = 1
    ) -> QuizSession:
        """Create a session positioned on its first question."""
        time_limit = self.settings.timer_duration
        return QuizSession(
            mode=mode,
            working_set=tuple(working_set),
            time_limit=time_limit,
            seconds_remaining=time_limit,
            level=level,
            subject=subject,
            topic=topic,
            desired_count=desired_count,
        )

    def start_question(self, session: QuizSession, index: int) -> QuizSession:
        """Enter the answering phase for the question at ``index``."""
        return dataclasses.replace(
            session,
            index=index,
            phase=Phase.ANSWERING,
            user_answer=None,
            skip_pending=False,
            seconds_remaining=session.time_limit,
        )

    def tick(self, session: QuizSession) -> QuizSession:
        """One countdown second; an expired clock submits "no answer"."""
        if session.phase is not Phase.ANSWERING:
            logger.debug(f"Ignoring tick in phase {session.phase.value}")
            return session
        if session.seconds_remaining <= 0:
            return self.submit_answer(dataclasses.replace(session, seconds_remaining=0), None)
        return dataclasses.replace(session, seconds_remaining=session.seconds_remaining - 1)

    def submit_answer(self, session: QuizSession, answer: Optional[str]) -> QuizSession:
        """Record an answer (None when time ran out) and show feedback."""
        if session.phase is not Phase.ANSWERING:
            logger.debug(f"Ignoring answer in phase {session.phase.value}")
            return session

        question = session.current_question
        correct = answer is not None and answer == question.correct_answer
        return dataclasses.replace(
            session,
            user_answer=answer,
            phase=Phase.FEEDBACK,
            skip_pending=False,
            score=session.score + 1 if correct else session.score,
        )

    def advance(self, session: QuizSession) -> QuizSession:
        """Leave the feedback of the current question for the next one."""
        if session.phase is not Phase.FEEDBACK:
            logger.debug(f"Ignoring advance in phase {session.phase.value}")
            return session
        return self._next_question(session)

    def _next_question(self, session: QuizSession) -> QuizSession:
        """Start the next question, or complete the session after the last one."""
        if session.index + 1 < len(session.working_set):
            return self.start_question(session, session.index + 1)
        return self.complete(session)

    def complete(self, session: QuizSession) -> QuizSession:
        passed = None
        if session.mode is QuizMode.MIXED:
            passed = session.score >= self.settings.pass_threshold
        return dataclasses.replace(
            session,
            phase=Phase.COMPLETED,
            skip_pending=False,
            passed=passed,
            max_level_reached=bool(passed) and session.level >= self.settings.max_level,
        )

    def request_skip(self, session: QuizSession) -> QuizSession:
        if session.phase is not Phase.ANSWERING:
            logger.debug(f"Ignoring skip request in phase {session.phase.value}")
            return session
        return dataclasses.replace(session, skip_pending=True)

    def cancel_skip(self, session: QuizSession) -> QuizSession:
        if not session.skip_pending:
            return session
        return dataclasses.replace(session, skip_pending=False)

    def confirm_skip(self, session: QuizSession) -> QuizSession:
        """Forfeit the current question without scoring it."""
        if not session.skip_pending or session.phase is not Phase.ANSWERING:
            logger.debug("Ignoring skip confirmation without a pending skip")
            return session
        return self._next_question(dataclasses.replace(session, skip_pending=False))

    # Level progression

    def can_progress(self, session: QuizSession) -> bool:
        return (
            session.mode is QuizMode.MIXED
            and session.phase is Phase.COMPLETED
            and bool(session.passed)
            and session.level < self.settings.max_level
        )

    def progress_level(
        self,
        session: QuizSession,
        catalog: QuestionCatalog,
        history: Iterable[str]
    ) -> Tuple[QuizSession, Set[str]]:
        """
        Start the next level after a passed mixed session.

        Returns:
            Tuple of (session, history). The session is unchanged when the
            level gate is not met, and marked ``max_level_reached`` at the cap.
        """
        history = set(history)
        if session.mode is not QuizMode.MIXED or session.phase is not Phase.COMPLETED or not session.passed:
            return session, history

        if session.level >= self.settings.max_level:
            logger.info(f"Max level {self.settings.max_level} reached")
            return dataclasses.replace(session, max_level_reached=True), history

        working_set, history = self.select_pool(
            catalog, QuizMode.MIXED, None, None, history, self.settings.mixed_question_count
        )
        if not working_set:
            return session, history

        logger.info(f"Level up: {session.level} -> {session.level + 1}")
        return self.new_session(
            QuizMode.MIXED,
            working_set,
            desired_count=self.settings.mixed_question_count,
            level=session.level + 1,
        ), history

    def retry(
        self,
        session: QuizSession,
        catalog: QuestionCatalog,
        history: Iterable[str]
    ) -> Tuple[QuizSession, Set[str]]:
        """Select a fresh working set with the same mode, filters, count and level."""
        working_set, history = self.select_pool(
            catalog, session.mode, session.subject, session.topic, history, session.desired_count
        )
        if not working_set:
            return session, history
        return self.new_session(
            session.mode,
            working_set,
            subject=session.subject,
            topic=session.topic,
            desired_count=session.desired_count,
            level=session.level,
        ), history

    def result_message(self, session: QuizSession) -> str:
        """Encouragement shown on the results screen."""
        if session.mode is QuizMode.MIXED:
            if session.passed:
                return "Fantastic job! You're a true quiz champion!"
            return "Don't worry, every expert was once a beginner! Keep practicing, you've got this!"

        total = len(session.working_set)
        if session.score == total:
            return "Absolutely brilliant! You've mastered this topic!"
        if session.score >= total / 2:
            return "Great effort! You're well on your way to becoming a master of this topic!"
        return "Learning is a journey, not a race! A little more practice and you'll shine!"
