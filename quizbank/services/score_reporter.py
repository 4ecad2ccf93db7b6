from ..models import ScoreReport

def format_accuracy(correct: int, total: int) -> str:
    if total == 0:
        return "0%"
    return f"{correct / total * 100:.1f}%"

def build_report(session) -> ScoreReport:
    total = len(session.answers)
    return ScoreReport(
        total=total,
        correct=session.correct,
        incorrect=session.incorrect,
        accuracy=format_accuracy(session.correct, total),
        incorrect_answers=[a for a in session.answers if not a.is_correct],
    )
