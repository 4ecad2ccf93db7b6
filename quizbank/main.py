from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import ORJSONResponse
from fastapi.middleware.cors import CORSMiddleware
import logging
from time import perf_counter
from typing import List, Optional
from .config import settings
from .errors import IngestionError, ValidationGuardError
from .models import (
	BankSummary,
	ConfirmRequest,
	CurrentQuestionView,
	FinalizeResponse,
	HistoryEntry,
	ImportResponse,
	JumpRequest,
	OverviewItem,
	Question,
	ScoreReport,
	SelectionRequest,
	StartExamRequest,
	StartExamResponse,
	SubmitResponse,
	ThresholdRequest,
)
from .services import queries
from .services.exam_engine import ExamEngine
from .services.persistence import JsonFileKeyValueStore, StatePersistence
from .services.question_store import import_bank, import_slot
from .services.scheduler import DeferredScheduler

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.DEBUG), format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger("quizbank")

app = FastAPI(default_response_class=ORJSONResponse)

app.add_middleware(
	CORSMiddleware,
	allow_origins=["*"],
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

def configure(persistence: StatePersistence, scheduler: Optional[DeferredScheduler] = None) -> None:
	"""Wire the engine and load the persisted bank, history and threshold."""
	app.state.scheduler = scheduler or DeferredScheduler()
	app.state.engine = ExamEngine(persistence, scheduler=app.state.scheduler)
	app.state.ctx = app.state.engine.load_context()

configure(StatePersistence(JsonFileKeyValueStore(settings.data_dir)))

@app.on_event("startup")
def on_startup() -> None:
	logger.info({
		"event": "api_startup",
		"data_dir": settings.data_dir,
		"questions": len(app.state.ctx.store),
		"threshold": app.state.ctx.threshold,
	})

@app.middleware("http")
async def timing_middleware(request: Request, call_next):
	start = perf_counter()
	# the grace-period finalize runs cooperatively before the next request is served
	request.app.state.scheduler.run_due()
	response = await call_next(request)
	duration_ms = int((perf_counter() - start) * 1000)
	logger.debug({
		"event": "request_timing",
		"method": request.method,
		"path": request.url.path,
		"status_code": response.status_code,
		"duration_ms": duration_ms,
	})
	return response

@app.exception_handler(IngestionError)
async def ingestion_error_handler(request: Request, exc: IngestionError):
	logger.info({"event": "import_rejected", "reason": str(exc)})
	return ORJSONResponse(status_code=400, content={"detail": str(exc)})

@app.exception_handler(ValidationGuardError)
async def guard_error_handler(request: Request, exc: ValidationGuardError):
	logger.info({"event": "transition_blocked", "path": request.url.path, "reason": str(exc)})
	return ORJSONResponse(status_code=409, content={"detail": str(exc)})

@app.post("/api/bank/import", response_model=ImportResponse)
async def import_questions(request: Request, filename: str):
	ctx = app.state.ctx
	with import_slot(ctx):
		data = await request.body()
		questions = import_bank(ctx, app.state.engine.persistence, filename, data)
	return ImportResponse(imported=len(questions))

@app.get("/api/bank", response_model=BankSummary)
async def get_bank():
	return queries.bank_summary(app.state.ctx)

@app.put("/api/settings/threshold", response_model=BankSummary)
async def put_threshold(payload: ThresholdRequest):
	app.state.engine.set_threshold(app.state.ctx, payload.threshold)
	return queries.bank_summary(app.state.ctx)

@app.post("/api/exam/start", response_model=StartExamResponse)
async def start_exam(payload: StartExamRequest | None = None):
	session = app.state.engine.start(app.state.ctx, payload.threshold if payload else None)
	return StartExamResponse(exam_id=session.exam_id, total=len(session))

@app.get("/api/exam/current", response_model=CurrentQuestionView)
async def get_current():
	view = queries.current_view(app.state.ctx)
	if view is None:
		raise HTTPException(status_code=404, detail="no_exam_in_progress")
	return view

@app.post("/api/exam/select", response_model=CurrentQuestionView)
async def select_answer(payload: SelectionRequest):
	app.state.engine.select(app.state.ctx, payload.selection)
	return queries.current_view(app.state.ctx)

@app.post("/api/exam/submit", response_model=SubmitResponse)
async def submit_answer(payload: SelectionRequest):
	feedback, outcome = app.state.engine.submit_and_advance(app.state.ctx, payload.selection)
	return SubmitResponse(feedback=feedback, outcome=outcome)

@app.post("/api/exam/advance", response_model=SubmitResponse)
async def advance():
	outcome = app.state.engine.advance(app.state.ctx)
	session = app.state.ctx.session
	return SubmitResponse(feedback=session.feedback if session is not None else None, outcome=outcome)

@app.post("/api/exam/previous", response_model=CurrentQuestionView)
async def previous_question():
	app.state.engine.previous(app.state.ctx)
	return queries.current_view(app.state.ctx)

@app.post("/api/exam/jump", response_model=CurrentQuestionView)
async def jump_to_question(payload: JumpRequest):
	app.state.engine.jump(app.state.ctx, payload.index)
	return queries.current_view(app.state.ctx)

@app.get("/api/exam/overview", response_model=List[OverviewItem])
async def get_overview():
	return queries.overview(app.state.ctx)

@app.post("/api/exam/finalize", response_model=FinalizeResponse)
async def finalize_exam(payload: ConfirmRequest):
	entry = app.state.engine.finalize(app.state.ctx, confirmed=payload.confirm)
	if entry is None:
		return FinalizeResponse(finalized=False)
	return FinalizeResponse(finalized=True, report=entry.score)

@app.post("/api/exam/abandon", response_model=BankSummary)
async def abandon_exam():
	app.state.engine.abandon(app.state.ctx)
	return queries.bank_summary(app.state.ctx)

@app.get("/api/exam/report", response_model=ScoreReport)
async def get_report():
	report = queries.report(app.state.ctx)
	if report is None:
		raise HTTPException(status_code=404, detail="no_exam")
	return report

@app.get("/api/history", response_model=List[HistoryEntry])
async def get_history():
	return queries.history(app.state.ctx)

@app.get("/api/review/colored", response_model=List[Question])
async def get_colored_review():
	return queries.colored_review(app.state.ctx)

@app.post("/api/data/clear", response_model=BankSummary)
async def clear_data(payload: ConfirmRequest):
	if not app.state.engine.clear_all(app.state.ctx, confirmed=payload.confirm):
		raise HTTPException(status_code=409, detail="clear_not_confirmed")
	return queries.bank_summary(app.state.ctx)
