from datetime import datetime
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, model_validator

OPTION_LABELS = ("A", "B", "C", "D", "E")

class QuestionType(str, Enum):
    SINGLE = "single"
    MULTI = "multi"
    BOOLEAN = "boolean"

class SessionPhase(str, Enum):
    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    FINISHED = "finished"

class MasteryStats(BaseModel):
    consecutive_correct: NonNegativeInt = 0
    total_attempts: NonNegativeInt = 0
    correct_attempts: NonNegativeInt = 0

class Question(BaseModel):
    id: str
    type: QuestionType
    prompt: str
    options: Dict[str, str]
    answer: str
    option_colors: Optional[Dict[str, str]] = None
    source: Literal["delimited", "spreadsheet"] = "delimited"
    statistics: MasteryStats = Field(default_factory=MasteryStats)

    @model_validator(mode="after")
    def _check_answer_labels(self) -> "Question":
        if not self.options:
            raise ValueError(f"question {self.id!r} has no options")
        if not self.answer:
            raise ValueError(f"question {self.id!r} has no correct answer")
        missing = [label for label in self.answer_labels() if label not in self.options]
        if missing:
            raise ValueError(f"question {self.id!r} answer refers to missing options {''.join(missing)}")
        return self

    def answer_labels(self) -> List[str]:
        if self.type == QuestionType.MULTI:
            return sorted(set(self.answer))
        return [self.answer]

class AnswerRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    question_id: str
    prompt: str
    user_answer: str
    correct_answer: str
    is_correct: bool

class Feedback(BaseModel):
    position: int
    user_answer: str
    correct_answer: str
    is_correct: bool

class ScoreReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    correct: int
    incorrect: int
    accuracy: str
    incorrect_answers: List[AnswerRecord] = Field(default_factory=list)

class HistoryEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    exam_id: str
    started_at: datetime
    ended_at: datetime
    answers: List[AnswerRecord]
    score: ScoreReport

class QuestionStatus(str, Enum):
    UNANSWERED = "unanswered"
    CORRECT = "correct"
    INCORRECT = "incorrect"

class OverviewItem(BaseModel):
    index: int
    question_id: str
    status: QuestionStatus

class CurrentQuestionView(BaseModel):
    question: Question
    position: int
    total: int
    progress_percent: float
    pending_input: str | List[str]
    feedback: Optional[Feedback] = None

class BankSummary(BaseModel):
    total_questions: int
    eligible_questions: int
    threshold: int
    phase: SessionPhase

class ImportResponse(BaseModel):
    imported: int

class StartExamRequest(BaseModel):
    threshold: Optional[int] = None

class StartExamResponse(BaseModel):
    exam_id: str
    total: int

class SelectionRequest(BaseModel):
    selection: str | List[str] | None = None

class SubmitResponse(BaseModel):
    feedback: Optional[Feedback] = None
    outcome: str

class JumpRequest(BaseModel):
    index: int

class ConfirmRequest(BaseModel):
    confirm: bool = False

class ThresholdRequest(BaseModel):
    threshold: int

class FinalizeResponse(BaseModel):
    finalized: bool
    report: Optional[ScoreReport] = None
