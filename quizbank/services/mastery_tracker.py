import logging
from typing import Iterable, List

from ..models import AnswerRecord

logger = logging.getLogger("quizbank")

def apply_session(answers: Iterable[AnswerRecord], store) -> List[str]:
    """Fold one finished session's answers into the per-question statistics.

    Call exactly once per finalized session; a second call counts every
    answer again. Returns the ids whose statistics changed.
    """
    touched: List[str] = []
    for answer in answers:
        question = store.lookup_by_id(answer.question_id)
        if question is None:
            logger.warning({"event": "stats_skipped_unknown_question", "question_id": answer.question_id})
            continue
        stats = question.statistics
        stats.total_attempts += 1
        if answer.is_correct:
            stats.correct_attempts += 1
            stats.consecutive_correct += 1
        else:
            stats.consecutive_correct = 0
        touched.append(answer.question_id)
    return touched
