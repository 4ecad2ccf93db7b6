import logging
from contextlib import contextmanager
from typing import Dict, List, Optional

from ..errors import ValidationGuardError
from ..models import MasteryStats, Question
from .tabular_parser import parse_file

logger = logging.getLogger("quizbank")

class QuestionStore:
	def __init__(self, questions: Optional[List[Question]] = None, stats: Optional[Dict[str, MasteryStats]] = None) -> None:
		self._carried: Dict[str, MasteryStats] = dict(stats or {})
		self._questions: List[Question] = []
		self._by_id: Dict[str, Question] = {}
		if questions:
			self._install(list(questions))

	def _install(self, questions: List[Question]) -> None:
		self._questions = questions
		self._by_id = {q.id: q for q in questions}

	@property
	def questions(self) -> List[Question]:
		return list(self._questions)

	def __len__(self) -> int:
		return len(self._questions)

	def replace_all(self, records: List[Question]) -> List[Question]:
		"""Swap in a freshly parsed bank, carrying statistics over by question id."""
		known = self.stats_snapshot()
		fresh: List[Question] = []
		carried = 0
		for record in records:
			stats = known.get(record.id)
			if stats is not None:
				carried += 1
			fresh.append(record.model_copy(update={"statistics": stats.model_copy() if stats else MasteryStats()}))
		self._carried = known
		self._install(fresh)
		logger.debug({"event": "bank_replaced", "count": len(fresh), "carried_stats": carried})
		return self.questions

	def lookup_by_id(self, question_id: str) -> Optional[Question]:
		return self._by_id.get(question_id)

	def list_eligible(self, threshold: int) -> List[Question]:
		return [q for q in self._questions if q.statistics.consecutive_correct < threshold]

	def stats_snapshot(self) -> Dict[str, MasteryStats]:
		merged = {qid: stats.model_copy() for qid, stats in self._carried.items()}
		for q in self._questions:
			merged[q.id] = q.statistics.model_copy()
		return merged

	def clear(self) -> None:
		self._carried = {}
		self._install([])


@contextmanager
def import_slot(ctx):
	"""Single-flight guard around reading and applying one uploaded file."""
	if ctx.import_in_progress:
		raise ValidationGuardError("an import is already in progress")
	ctx.import_in_progress = True
	try:
		yield
	finally:
		ctx.import_in_progress = False


def import_bank(ctx, persistence, filename: str, data: bytes) -> List[Question]:
	"""Parse an uploaded file and replace the bank; nothing changes if parsing fails."""
	records = parse_file(filename, data)
	questions = ctx.store.replace_all(records)
	persistence.save_questions(questions)
	persistence.save_stats(ctx.store.stats_snapshot())
	logger.info({"event": "bank_imported", "filename": filename, "count": len(questions)})
	return questions
