import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional, Tuple

from ..config import settings
from ..errors import InvalidTransitionError, ValidationGuardError
from ..models import AnswerRecord, Feedback, HistoryEntry, Question, QuestionType, SessionPhase
from ..state import ExamSession, SessionContext
from .mastery_tracker import apply_session
from .persistence import StatePersistence
from .question_store import QuestionStore
from .scheduler import DeferredScheduler, Scheduler
from .score_reporter import build_report
from .tabular_parser import ANSWER_SEPARATORS

logger = logging.getLogger("quizbank")

ADVANCED = "advanced"
FINALIZE_SCHEDULED = "finalize_scheduled"
FINALIZED = "finalized"
FINALIZE_DECLINED = "finalize_declined"


def normalize_selection(question: Question, selection: Any) -> str:
	"""Canonical answer string: sorted unique labels for multi-choice, trimmed label otherwise."""
	if selection is None:
		return ""
	if question.type == QuestionType.MULTI:
		items: Iterable[Any] = [selection] if isinstance(selection, str) else selection
		labels = {ch for item in items for ch in ANSWER_SEPARATORS.sub("", str(item)).upper()}
		return "".join(sorted(labels))
	if isinstance(selection, (list, tuple, set)):
		selection = "".join(str(item) for item in selection)
	return str(selection).strip().upper()


def check_answer(question: Question, user_answer: str) -> bool:
	if question.type == QuestionType.MULTI:
		return sorted(set(user_answer)) == question.answer_labels()
	return user_answer == question.answer.strip()


class ExamEngine:
	"""Session state machine: idle -> in_progress -> finished, abandon back to idle.

	The engine holds collaborators only; all mutable state lives in the
	SessionContext passed to each transition.
	"""

	def __init__(
		self,
		persistence: StatePersistence,
		confirm: Optional[Callable[[str], bool]] = None,
		scheduler: Optional[Scheduler] = None,
		grace_seconds: Optional[float] = None,
	) -> None:
		self.persistence = persistence
		self.confirm = confirm or (lambda message: settings.auto_confirm)
		self.scheduler = scheduler or DeferredScheduler()
		self.grace_seconds = settings.finalize_grace_seconds if grace_seconds is None else grace_seconds

	def load_context(self) -> SessionContext:
		store = QuestionStore(self.persistence.load_questions(), self.persistence.load_stats())
		ctx = SessionContext(
			store=store,
			threshold=self.persistence.load_threshold(settings.default_threshold),
			history=self.persistence.load_history(),
		)
		logger.debug({"event": "context_loaded", "questions": len(store), "history": len(ctx.history), "threshold": ctx.threshold})
		return ctx

	def _require(self, ctx: SessionContext, *phases: SessionPhase) -> ExamSession:
		if ctx.phase not in phases or ctx.session is None:
			raise InvalidTransitionError(f"not allowed while {ctx.phase.value}")
		return ctx.session

	def _require_answerable(self, ctx: SessionContext) -> ExamSession:
		session = self._require(ctx, SessionPhase.IN_PROGRESS)
		if session.finalize_scheduled:
			raise InvalidTransitionError("exam is being finalized")
		return session

	def start(self, ctx: SessionContext, threshold: Optional[int] = None) -> ExamSession:
		threshold = ctx.threshold if threshold is None else threshold
		eligible = ctx.store.list_eligible(threshold)
		if not eligible:
			raise ValidationGuardError("no eligible questions")
		if ctx.session is not None:
			logger.debug({"event": "session_discarded", "exam_id": ctx.session.exam_id, "phase": ctx.phase.value})
		session = ExamSession(eligible)
		ctx.session = session
		ctx.phase = SessionPhase.IN_PROGRESS
		logger.debug({"event": "session_started", "exam_id": session.exam_id, "count": len(session), "threshold": threshold})
		return session

	def select(self, ctx: SessionContext, value: Any) -> None:
		session = self._require_answerable(ctx)
		question = session.current_question()
		if question.type == QuestionType.MULTI:
			session.pending_input = set(normalize_selection(question, value))
		else:
			session.pending_input = normalize_selection(question, value)

	def submit(self, ctx: SessionContext, selection: Any = None) -> Optional[Feedback]:
		session = self._require_answerable(ctx)
		question = session.current_question()
		raw = session.pending_input if selection is None else selection
		user_answer = normalize_selection(question, raw)
		if not user_answer:
			session.feedback = None
			session.last_submit_recorded = False
			logger.debug({"event": "answer_skipped", "exam_id": session.exam_id, "question_id": question.id})
			return None
		is_correct = check_answer(question, user_answer)
		session.answers.append(AnswerRecord(
			question_id=question.id,
			prompt=question.prompt,
			user_answer=user_answer,
			correct_answer=question.answer,
			is_correct=is_correct,
		))
		if is_correct:
			session.correct += 1
		else:
			session.incorrect += 1
		session.feedback = Feedback(
			position=session.pointer + 1,
			user_answer=user_answer,
			correct_answer=question.answer,
			is_correct=is_correct,
		)
		session.last_submit_recorded = True
		logger.debug({
			"event": "submit_answer",
			"exam_id": session.exam_id,
			"question_id": question.id,
			"user_answer": user_answer,
			"correct_answer": question.answer,
			"is_correct": is_correct,
		})
		return session.feedback

	def advance(self, ctx: SessionContext) -> str:
		session = self._require(ctx, SessionPhase.IN_PROGRESS)
		recorded = session.last_submit_recorded
		session.last_submit_recorded = False
		if not session.is_last():
			session.pointer += 1
			session.reset_input()
			if not recorded:
				session.feedback = None
			return ADVANCED
		if recorded:
			self._schedule_finalize(ctx, session)
			return FINALIZE_SCHEDULED
		return FINALIZED if self.finalize(ctx) is not None else FINALIZE_DECLINED

	def submit_and_advance(self, ctx: SessionContext, selection: Any = None) -> Tuple[Optional[Feedback], str]:
		feedback = self.submit(ctx, selection)
		return feedback, self.advance(ctx)

	def _schedule_finalize(self, ctx: SessionContext, session: ExamSession) -> None:
		if session.finalize_scheduled:
			return
		session.finalize_scheduled = True
		exam_id = session.exam_id
		self.scheduler.call_later(self.grace_seconds, lambda: self._deferred_finalize(ctx, exam_id))
		logger.debug({"event": "finalize_scheduled", "exam_id": exam_id, "delay": self.grace_seconds})

	def _deferred_finalize(self, ctx: SessionContext, exam_id: str) -> None:
		session = ctx.session
		if session is None or session.exam_id != exam_id or ctx.phase != SessionPhase.IN_PROGRESS:
			logger.debug({"event": "deferred_finalize_stale", "exam_id": exam_id})
			return
		session.finalize_scheduled = False
		try:
			self.finalize(ctx)
		except ValidationGuardError as e:
			logger.info({"event": "deferred_finalize_blocked", "exam_id": exam_id, "reason": str(e)})

	def previous(self, ctx: SessionContext) -> None:
		session = self._require(ctx, SessionPhase.IN_PROGRESS)
		if session.pointer <= 0:
			raise ValidationGuardError("already at the first question")
		session.pointer -= 1
		session.reset_input()
		session.feedback = None
		session.last_submit_recorded = False

	def jump(self, ctx: SessionContext, index: int) -> None:
		session = self._require(ctx, SessionPhase.IN_PROGRESS)
		if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(session):
			raise ValidationGuardError(f"question index {index!r} out of range")
		session.pointer = index
		session.reset_input()
		session.feedback = None
		session.last_submit_recorded = False

	def finalize(self, ctx: SessionContext, confirmed: Optional[bool] = None) -> Optional[HistoryEntry]:
		session = self._require(ctx, SessionPhase.IN_PROGRESS)
		if not session.answers:
			raise ValidationGuardError("no answers recorded yet")
		if confirmed is None:
			confirmed = bool(self.confirm("Finish this exam?"))
		if not confirmed:
			logger.debug({"event": "finalize_declined", "exam_id": session.exam_id})
			return None
		apply_session(session.answers, ctx.store)
		entry = HistoryEntry(
			exam_id=session.exam_id,
			started_at=session.started_at,
			ended_at=datetime.now(timezone.utc),
			answers=list(session.answers),
			score=build_report(session),
		)
		ctx.history.insert(0, entry)
		ctx.phase = SessionPhase.FINISHED
		session.finalize_scheduled = False
		self.persistence.save_questions(ctx.store.questions)
		self.persistence.save_stats(ctx.store.stats_snapshot())
		self.persistence.save_history(ctx.history)
		logger.info({"event": "session_finalized", "exam_id": entry.exam_id, "score": entry.score.model_dump(exclude={"incorrect_answers"})})
		return entry

	def abandon(self, ctx: SessionContext) -> None:
		session = self._require(ctx, SessionPhase.IN_PROGRESS, SessionPhase.FINISHED)
		ctx.session = None
		ctx.phase = SessionPhase.IDLE
		logger.debug({"event": "session_abandoned", "exam_id": session.exam_id})

	def set_threshold(self, ctx: SessionContext, threshold: int) -> int:
		if isinstance(threshold, bool) or not isinstance(threshold, int) or threshold < 1:
			raise ValidationGuardError("threshold must be a positive integer")
		ctx.threshold = threshold
		self.persistence.save_threshold(threshold)
		return threshold

	def clear_all(self, ctx: SessionContext, confirmed: Optional[bool] = None) -> bool:
		if confirmed is None:
			confirmed = bool(self.confirm("Clear the question bank, history, statistics and settings?"))
		if not confirmed:
			return False
		ctx.store.clear()
		ctx.history.clear()
		ctx.threshold = settings.default_threshold
		ctx.session = None
		ctx.phase = SessionPhase.IDLE
		self.persistence.clear()
		logger.info({"event": "data_cleared"})
		return True
