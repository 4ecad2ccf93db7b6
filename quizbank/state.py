import uuid
from datetime import datetime, timezone
from typing import List, Optional, Set

from .models import AnswerRecord, Feedback, HistoryEntry, Question, QuestionType, SessionPhase
from .services.question_store import QuestionStore

def empty_input(question: Optional[Question]) -> str | Set[str]:
	if question is not None and question.type == QuestionType.MULTI:
		return set()
	return ""

class ExamSession:
	def __init__(self, questions: List[Question]) -> None:
		self.exam_id = str(uuid.uuid4())
		self.started_at = datetime.now(timezone.utc)
		self.questions: tuple[Question, ...] = tuple(questions)
		self.pointer = 0
		self.answers: List[AnswerRecord] = []
		self.correct = 0
		self.incorrect = 0
		self.feedback: Optional[Feedback] = None
		self.pending_input: str | Set[str] = empty_input(self.current_question())
		self.last_submit_recorded = False
		self.finalize_scheduled = False

	def __len__(self) -> int:
		return len(self.questions)

	def current_question(self) -> Optional[Question]:
		if not self.questions:
			return None
		return self.questions[self.pointer]

	def is_last(self) -> bool:
		return self.pointer == len(self.questions) - 1

	def reset_input(self) -> None:
		self.pending_input = empty_input(self.current_question())

class SessionContext:
	"""Everything a transition needs: the bank, the active session and the history log."""

	def __init__(self, store: QuestionStore, threshold: int, history: Optional[List[HistoryEntry]] = None) -> None:
		self.store = store
		self.threshold = threshold
		self.history: List[HistoryEntry] = list(history or [])
		self.phase = SessionPhase.IDLE
		self.session: Optional[ExamSession] = None
		self.import_in_progress = False
