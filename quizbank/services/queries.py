from typing import Dict, List, Optional

from ..models import (
	BankSummary,
	CurrentQuestionView,
	HistoryEntry,
	OverviewItem,
	Question,
	QuestionStatus,
	ScoreReport,
	SessionPhase,
)
from ..state import SessionContext
from .score_reporter import build_report

def eligible_count(ctx: SessionContext, threshold: Optional[int] = None) -> int:
	return len(ctx.store.list_eligible(ctx.threshold if threshold is None else threshold))

def bank_summary(ctx: SessionContext) -> BankSummary:
	return BankSummary(
		total_questions=len(ctx.store),
		eligible_questions=eligible_count(ctx),
		threshold=ctx.threshold,
		phase=ctx.phase,
	)

def current_view(ctx: SessionContext) -> Optional[CurrentQuestionView]:
	session = ctx.session
	if session is None or ctx.phase != SessionPhase.IN_PROGRESS:
		return None
	pending = session.pending_input
	return CurrentQuestionView(
		question=session.current_question(),
		position=session.pointer + 1,
		total=len(session),
		progress_percent=(session.pointer + 1) / len(session) * 100,
		pending_input=sorted(pending) if isinstance(pending, set) else pending,
		feedback=session.feedback,
	)

def overview(ctx: SessionContext) -> List[OverviewItem]:
	"""Status per snapshot question, taken from the latest answer recorded for it."""
	session = ctx.session
	if session is None:
		return []
	latest: Dict[str, bool] = {}
	for answer in session.answers:
		latest[answer.question_id] = answer.is_correct
	items: List[OverviewItem] = []
	for index, question in enumerate(session.questions):
		if question.id not in latest:
			status = QuestionStatus.UNANSWERED
		elif latest[question.id]:
			status = QuestionStatus.CORRECT
		else:
			status = QuestionStatus.INCORRECT
		items.append(OverviewItem(index=index, question_id=question.id, status=status))
	return items

def report(ctx: SessionContext) -> Optional[ScoreReport]:
	if ctx.session is None or ctx.phase == SessionPhase.IDLE:
		return None
	return build_report(ctx.session)

def colored_review(ctx: SessionContext) -> List[Question]:
	return [q for q in ctx.store.questions if q.source == "spreadsheet" and q.option_colors]

def history(ctx: SessionContext) -> List[HistoryEntry]:
	return list(ctx.history)
