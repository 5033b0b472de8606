"""
Row parser for the published question sheet.

Column order: question, option1..option4, correct answer, explanation,
topic, subject. Extra trailing columns are ignored.
"""
import logging
import random
from typing import List, Optional

from .models import Question

logger = logging.getLogger(__name__)

EXPECTED_COLUMNS = 9
OPTION_COUNT = 4


def split_csv_row(row: str) -> List[str]:
    """
    Split one delimited row into trimmed fields.

    A field may be wrapped in double quotes; inside quotes a doubled quote
    is a literal quote and commas do not separate fields.
    """
    fields = []
    current = []
    in_quote = False
    i = 0
    length = len(row)

    while i < length:
        char = row[i]
        if char == '"':
            if in_quote and i + 1 < length and row[i + 1] == '"':
                current.append('"')
                i += 1
            else:
                in_quote = not in_quote
        elif char == ',' and not in_quote:
            fields.append(''.join(current).strip())
            current = []
        else:
            current.append(char)
        i += 1

    fields.append(''.join(current).strip())
    return fields


def parse_question_row(row: str, rng: Optional[random.Random] = None) -> Optional[Question]:
    """
    Parse a raw row into a Question.

    Args:
        row: Raw text row (without the trailing newline)
        rng: Randomness source for the option shuffle

    Returns:
        A Question with its four options shuffled, or None if the row is rejected
    """
    rng = rng or random
    fields = split_csv_row(row)

    if len(fields) < EXPECTED_COLUMNS:
        logger.debug(f"Skipping malformed row (not enough columns): {row!r}")
        return None

    (question, option1, option2, option3, option4,
     correct_answer, explanation, topic, subject) = fields[:EXPECTED_COLUMNS]

    options = [opt for opt in (option1, option2, option3, option4) if opt]

    if not question or not correct_answer or not subject or not topic:
        logger.debug(f"Skipping incomplete row: {row!r}")
        return None

    if len(options) != OPTION_COUNT:
        logger.debug(f"Skipping row without {OPTION_COUNT} options: {row!r}")
        return None

    if correct_answer not in options:
        logger.debug(f"Skipping row whose answer is not an option: {row!r}")
        return None

    # Fisher-Yates via random.shuffle
    rng.shuffle(options)

    return Question(
        text=question,
        options=tuple(options),
        correct_answer=correct_answer,
        explanation=explanation,
        subject=subject,
        topic=topic,
    )
