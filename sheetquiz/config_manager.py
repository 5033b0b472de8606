"""
Configuration manager for quiz settings and parameters.
"""
import copy
import logging
from typing import Any, Dict, List, Mapping, Optional

from .models import QuizSettings


class ConfigManager:
    """Manages quiz configuration settings."""

    # Default configuration values
    DEFAULT_SOURCE_URL = (
        "https://docs.google.com/spreadsheets/d/e/2PACX-1vQWdBcdp3GM1m97dy0yt3zRFEU_Hw-bjdlp8Mc1ZX2B43j0liArk1gveWZUn0TOK59Ffh4OyXoY5NCY/pub?output=csv"
    )
    DEFAULT_TIMER_DURATION = 30
    DEFAULT_AUTO_ADVANCE_DELAY_MS = 3000
    DEFAULT_MIXED_QUESTION_COUNT = 25
    DEFAULT_TOPIC_QUESTION_COUNT = 10
    DEFAULT_PASS_THRESHOLD = 18
    DEFAULT_MAX_LEVEL = 50
    DEFAULT_BOOKMARK_FILE = "./data/bookmarks.json"

    # Validation limits
    MIN_TIMER_DURATION = 5
    MAX_TIMER_DURATION = 300  # 5 minutes
    MAX_AUTO_ADVANCE_DELAY_MS = 60000
    MIN_QUESTION_COUNT = 1
    MAX_QUESTION_COUNT = 100
    MAX_LEVEL_LIMIT = 1000

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._settings = self._default_settings()

    def _default_settings(self) -> QuizSettings:
        return QuizSettings(
            source_url=self.DEFAULT_SOURCE_URL,
            timer_duration=self.DEFAULT_TIMER_DURATION,
            auto_advance_delay_ms=self.DEFAULT_AUTO_ADVANCE_DELAY_MS,
            mixed_question_count=self.DEFAULT_MIXED_QUESTION_COUNT,
            topic_question_count=self.DEFAULT_TOPIC_QUESTION_COUNT,
            pass_threshold=self.DEFAULT_PASS_THRESHOLD,
            max_level=self.DEFAULT_MAX_LEVEL,
            bookmark_file=self.DEFAULT_BOOKMARK_FILE,
        )

    def get_quiz_settings(self) -> QuizSettings:
        """
        Get current quiz settings.

        Returns:
            A copy of the current QuizSettings
        """
        return copy.deepcopy(self._settings)

    def _success(self, message: str, user_message: str) -> Dict[str, Any]:
        self.logger.info(message)
        return {'success': True, 'message': message, 'user_message': user_message}

    def _failure(self, error_msg: str, user_message: str) -> Dict[str, Any]:
        self.logger.error(error_msg)
        return {'success': False, 'error': error_msg, 'user_message': user_message}

    def _check_int(self, name: str, value: Any, minimum: int, maximum: int) -> Optional[Dict[str, Any]]:
        """Return a failure result if value is not an int within bounds."""
        if not isinstance(value, int) or isinstance(value, bool):
            return self._failure(
                f"{name} must be an integer, got {type(value).__name__}",
                f"❌ Invalid input: Expected a number, got {type(value).__name__}"
            )
        if value < minimum:
            return self._failure(
                f"{name} must be at least {minimum}",
                f"❌ Too small: Minimum is {minimum}"
            )
        if value > maximum:
            return self._failure(
                f"{name} cannot exceed {maximum}",
                f"❌ Too large: Maximum is {maximum}"
            )
        return None

    def set_source_url(self, url: str) -> Dict[str, Any]:
        """
        Set the question sheet URL.

        Args:
            url: http(s) URL of the published CSV

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(url, str) or not url.strip():
            return self._failure("Source URL cannot be empty", "❌ The question source URL cannot be empty")
        url = url.strip()
        if not url.startswith(("http://", "https://")):
            return self._failure(
                f"Source URL must use http or https: {url}",
                "❌ The question source must be an http(s) URL"
            )
        self._settings.source_url = url
        return self._success(f"Source URL set to {url}", "✅ Question source updated")

    def set_timer_duration(self, duration: int) -> Dict[str, Any]:
        """
        Set the timer duration for each question.

        Args:
            duration: Timer duration in seconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        failure = self._check_int("Timer duration", duration, self.MIN_TIMER_DURATION, self.MAX_TIMER_DURATION)
        if failure:
            return failure
        self._settings.timer_duration = duration
        return self._success(f"Timer duration set to {duration} seconds", f"✅ Timer set to {duration} seconds")

    def set_auto_advance_delay(self, delay_ms: int) -> Dict[str, Any]:
        failure = self._check_int("Auto-advance delay", delay_ms, 0, self.MAX_AUTO_ADVANCE_DELAY_MS)
        if failure:
            return failure
        self._settings.auto_advance_delay_ms = delay_ms
        return self._success(f"Auto-advance delay set to {delay_ms}ms", f"✅ Auto-advance after {delay_ms / 1000:g}s")

    def set_mixed_question_count(self, count: int, warn_below_threshold: bool = True) -> Dict[str, Any]:
        failure = self._check_int("Mixed question count", count, self.MIN_QUESTION_COUNT, self.MAX_QUESTION_COUNT)
        if failure:
            return failure
        if warn_below_threshold and count < self._settings.pass_threshold:
            self.logger.warning(
                f"Mixed question count {count} is below the pass threshold {self._settings.pass_threshold}"
            )
        self._settings.mixed_question_count = count
        return self._success(f"Mixed question count set to {count}", f"✅ Mixed quizzes have {count} questions")

    def set_topic_question_count(self, count: Optional[int]) -> Dict[str, Any]:
        """
        Set the default number of questions for topic quizzes.

        Args:
            count: Number of questions, or None to use every question of the topic

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if count is None:
            self._settings.topic_question_count = None
            return self._success(
                "Topic question count set to use all available questions",
                "✅ Topic quizzes will use all available questions"
            )
        failure = self._check_int("Topic question count", count, self.MIN_QUESTION_COUNT, self.MAX_QUESTION_COUNT)
        if failure:
            return failure
        self._settings.topic_question_count = count
        return self._success(f"Topic question count set to {count}", f"✅ Topic quizzes have {count} questions")

    def set_pass_threshold(self, threshold: int) -> Dict[str, Any]:
        failure = self._check_int("Pass threshold", threshold, 1, self._settings.mixed_question_count)
        if failure:
            return failure
        self._settings.pass_threshold = threshold
        return self._success(f"Pass threshold set to {threshold}", f"✅ Pass mark set to {threshold}")

    def set_max_level(self, max_level: int) -> Dict[str, Any]:
        failure = self._check_int("Max level", max_level, 1, self.MAX_LEVEL_LIMIT)
        if failure:
            return failure
        self._settings.max_level = max_level
        return self._success(f"Max level set to {max_level}", f"✅ Levels capped at {max_level}")

    def _check_name_list(self, name: str, values: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(values, (list, tuple)) or not all(isinstance(v, str) for v in values):
            return self._failure(
                f"{name} must be a list of strings",
                f"❌ Invalid input: {name} must be a list of names"
            )
        return None

    def set_mixed_excluded_subjects(self, subjects: List[str]) -> Dict[str, Any]:
        """Subjects kept out of mixed quizzes."""
        failure = self._check_name_list("Mixed excluded subjects", subjects)
        if failure:
            return failure
        self._settings.mixed_excluded_subjects = [s.strip() for s in subjects if s.strip()]
        return self._success(
            f"Mixed quizzes exclude {self._settings.mixed_excluded_subjects or 'nothing'}",
            "✅ Mixed quiz exclusions updated"
        )

    def set_subject_order(self, subjects: List[str]) -> Dict[str, Any]:
        failure = self._check_name_list("Subject order", subjects)
        if failure:
            return failure
        self._settings.subject_order = [s.strip() for s in subjects if s.strip()]
        return self._success("Subject order updated", "✅ Subject order updated")

    def set_topic_order(self, topic_order: Mapping[str, List[str]]) -> Dict[str, Any]:
        if not isinstance(topic_order, Mapping):
            return self._failure("Topic order must be a mapping of subject to topics", "❌ Invalid topic order")
        for subject, topics in topic_order.items():
            failure = self._check_name_list(f"Topic order for {subject}", topics)
            if failure:
                return failure
        self._settings.topic_order = {subject: list(topics) for subject, topics in topic_order.items()}
        return self._success("Topic order updated", "✅ Topic order updated")

    def set_bookmark_file(self, path: str) -> Dict[str, Any]:
        if not isinstance(path, str) or not path.strip():
            return self._failure("Bookmark file path cannot be empty", "❌ Bookmark file path cannot be empty")
        self._settings.bookmark_file = path.strip()
        return self._success(f"Bookmark file set to {path.strip()}", "✅ Bookmark file updated")

    def apply_config(self, config: Mapping[str, Any]) -> List[str]:
        """
        Apply the ``quiz`` section of a loaded config file.

        Invalid values are logged and skipped so the defaults stay in place.

        Returns:
            List of error messages for rejected values
        """
        quiz_config = config.get('quiz', {}) if config else {}
        setters = [
            ('source_url', self.set_source_url),
            ('timer_duration', self.set_timer_duration),
            ('auto_advance_delay_ms', self.set_auto_advance_delay),
            ('max_level', self.set_max_level),
            # The count/threshold pair is checked by validate_settings once both are set
            ('mixed_question_count', lambda count: self.set_mixed_question_count(count, warn_below_threshold=False)),
            ('pass_threshold', self.set_pass_threshold),
            ('topic_question_count', self.set_topic_question_count),
            ('mixed_excluded_subjects', self.set_mixed_excluded_subjects),
            ('subject_order', self.set_subject_order),
            ('topic_order', self.set_topic_order),
            ('bookmark_file', self.set_bookmark_file),
        ]

        errors = []
        for key, setter in setters:
            if key not in quiz_config:
                continue
            result = setter(quiz_config[key])
            if not result['success']:
                errors.append(f"{key}: {result['error']}")

        validation = self.validate_settings()
        errors.extend(validation['issues'])

        if errors:
            self.logger.warning(f"Configuration has {len(errors)} issues: {errors}")
        else:
            self.logger.info("Configuration applied successfully")
        return errors

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._settings = self._default_settings()
        self.logger.info("All settings reset to default values")

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        s = self._settings
        issues = []

        if not (self.MIN_TIMER_DURATION <= s.timer_duration <= self.MAX_TIMER_DURATION):
            issues.append(f"Invalid timer duration: {s.timer_duration}")
        if not (0 <= s.auto_advance_delay_ms <= self.MAX_AUTO_ADVANCE_DELAY_MS):
            issues.append(f"Invalid auto-advance delay: {s.auto_advance_delay_ms}")
        if not (self.MIN_QUESTION_COUNT <= s.mixed_question_count <= self.MAX_QUESTION_COUNT):
            issues.append(f"Invalid mixed question count: {s.mixed_question_count}")
        if s.topic_question_count is not None and not (
                self.MIN_QUESTION_COUNT <= s.topic_question_count <= self.MAX_QUESTION_COUNT):
            issues.append(f"Invalid topic question count: {s.topic_question_count}")
        if not (1 <= s.pass_threshold <= s.mixed_question_count):
            issues.append(f"Invalid pass threshold: {s.pass_threshold}")
        if not (1 <= s.max_level <= self.MAX_LEVEL_LIMIT):
            issues.append(f"Invalid max level: {s.max_level}")
        if not s.source_url:
            issues.append("Missing question source URL")

        return {"valid": not issues, "issues": issues}

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        s = self._settings
        topic_count = str(s.topic_question_count) if s.topic_question_count is not None else "all available"
        excluded = ", ".join(s.mixed_excluded_subjects) or "none"
        return (
            f"Quiz Settings:\n"
            f"• Timer: {s.timer_duration} seconds\n"
            f"• Auto-advance: {s.auto_advance_delay_ms / 1000:g} seconds\n"
            f"• Mixed quiz: {s.mixed_question_count} questions, pass mark {s.pass_threshold}\n"
            f"• Topic quiz: {topic_count} questions\n"
            f"• Levels: up to {s.max_level}\n"
            f"• Excluded from mixed: {excluded}"
        )
