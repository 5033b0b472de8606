"""
Core data models for the sheet-backed quiz engine.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple


class QuizMode(Enum):
    """Quiz flavours offered on the home screen."""
    MIXED = "mixed"
    TOPIC = "topic"


class Phase(Enum):
    """Phases of a single quiz instance."""
    ANSWERING = "answering"
    FEEDBACK = "feedback"
    COMPLETED = "completed"


class LoadState(Enum):
    """Observable states of the question catalog load."""
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"
    EMPTY = "empty"


@dataclass(frozen=True)
class Question:
    """Represents a single multiple-choice question."""
    text: str
    options: Tuple[str, ...]
    correct_answer: str
    explanation: str
    subject: str
    topic: str

    def to_dict(self) -> dict:
        return {
            "question": self.text,
            "options": list(self.options),
            "correct_answer": self.correct_answer,
            "explanation": self.explanation,
            "subject": self.subject,
            "topic": self.topic,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Question":
        return cls(
            text=data["question"],
            options=tuple(data["options"]),
            correct_answer=data["correct_answer"],
            explanation=data.get("explanation", ""),
            subject=data["subject"],
            topic=data["topic"],
        )


@dataclass
class QuizSettings:
    """Configuration settings for quiz sessions."""
    source_url: str = ""
    timer_duration: int = 30
    auto_advance_delay_ms: int = 3000
    mixed_question_count: int = 25
    topic_question_count: Optional[int] = 10
    pass_threshold: int = 18
    max_level: int = 50
    mixed_excluded_subjects: List[str] = field(default_factory=list)
    subject_order: List[str] = field(default_factory=list)
    topic_order: Dict[str, List[str]] = field(default_factory=dict)
    bookmark_file: str = "./data/bookmarks.json"


@dataclass(frozen=True)
class QuizSession:
    """
    State of one quiz instance.

    Sessions are values: every engine transition returns a new instance.
    ``desired_count`` of None means "all questions of the pool".
    """
    mode: QuizMode
    working_set: Tuple[Question, ...]
    time_limit: int
    index: int = 0
    score: int = 0
    user_answer: Optional[str] = None
    phase: Phase = Phase.ANSWERING
    seconds_remaining: int = 30
    level: int = 1
    subject: Optional[str] = None
    topic: Optional[str] = None
    desired_count: Optional[int] = None
    skip_pending: bool = False
    passed: Optional[bool] = None
    max_level_reached: bool = False
    start_time: datetime = field(default_factory=datetime.now)

    @property
    def current_question(self) -> Optional[Question]:
        if self.index < len(self.working_set):
            return self.working_set[self.index]
        return None

    @property
    def total_questions(self) -> int:
        return len(self.working_set)

    @property
    def is_completed(self) -> bool:
        return self.phase is Phase.COMPLETED
