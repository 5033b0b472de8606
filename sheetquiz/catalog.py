"""
Question catalog: the validated question bank and its subject/topic index.
"""
import logging
import random
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .models import Question
from .row_parser import parse_question_row

logger = logging.getLogger(__name__)


def order_by_priority(names: Iterable[str], priority: Sequence[str]) -> List[str]:
    """
    Order names by a preferred priority list.

    Listed names come first in list order; unlisted names follow alphabetically.
    Names in the priority list that are absent from ``names`` are omitted.
    """
    present = set(names)
    listed = [name for name in dict.fromkeys(priority) if name in present]
    unlisted = sorted(present.difference(listed))
    return listed + unlisted


class QuestionCatalog:
    """Read-only collection of validated questions."""

    def __init__(
        self,
        questions: Sequence[Question],
        subject_order: Sequence[str] = (),
        topic_order: Optional[Mapping[str, Sequence[str]]] = None,
        rejected_rows: int = 0
    ):
        self._questions: Tuple[Question, ...] = tuple(questions)
        self.rejected_rows = rejected_rows

        topics: Dict[str, set] = {}
        for question in self._questions:
            topics.setdefault(question.subject, set()).add(question.topic)

        topic_order = topic_order or {}
        self._subjects = order_by_priority(topics.keys(), subject_order)
        self._topics_by_subject = {
            subject: order_by_priority(topics[subject], topic_order.get(subject, ()))
            for subject in self._subjects
        }

    @classmethod
    def build(
        cls,
        rows: Iterable[str],
        subject_order: Sequence[str] = (),
        topic_order: Optional[Mapping[str, Sequence[str]]] = None,
        rng: Optional[random.Random] = None
    ) -> "QuestionCatalog":
        """
        Parse every row independently; bad rows are skipped.

        The caller decides what an empty catalog means (see DataManager).
        """
        questions = []
        rejected = 0
        for row in rows:
            if not row.strip():
                continue
            question = parse_question_row(row, rng)
            if question is None:
                rejected += 1
            else:
                questions.append(question)

        if rejected:
            logger.info(f"Skipped {rejected} invalid question rows")

        return cls(questions, subject_order, topic_order, rejected_rows=rejected)

    @property
    def questions(self) -> Tuple[Question, ...]:
        return self._questions

    @property
    def subjects(self) -> List[str]:
        return list(self._subjects)

    def topics_for(self, subject: str) -> List[str]:
        return list(self._topics_by_subject.get(subject, []))

    @property
    def topics_by_subject(self) -> Dict[str, List[str]]:
        return {subject: list(topics) for subject, topics in self._topics_by_subject.items()}

    def is_empty(self) -> bool:
        return not self._questions

    def __len__(self) -> int:
        return len(self._questions)

    def summary(self) -> Dict[str, object]:
        """Totals for the welcome screen."""
        return {
            'total_questions': len(self._questions),
            'subjects': self.subjects,
            'rejected_rows': self.rejected_rows,
        }
