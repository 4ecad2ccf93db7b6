import pytest

from quizbank.errors import IngestionError, ValidationGuardError
from quizbank.models import MasteryStats
from quizbank.services.question_store import QuestionStore, import_bank, import_slot
from quizbank.services.tabular_parser import parse_delimited

HEADER = "id,type,prompt,A,B,C,D,E,answer\n"


def test_replace_all_carries_stats_by_id(sample_bytes):
	store = QuestionStore(stats={"Q1": MasteryStats(consecutive_correct=2, total_attempts=4, correct_attempts=3)})
	store.replace_all(parse_delimited(sample_bytes))
	assert store.lookup_by_id("Q1").statistics == MasteryStats(consecutive_correct=2, total_attempts=4, correct_attempts=3)
	assert store.lookup_by_id("Q2").statistics == MasteryStats()


def test_stats_survive_import_of_a_different_bank(sample_bytes):
	store = QuestionStore()
	store.replace_all(parse_delimited(sample_bytes))
	store.lookup_by_id("Q1").statistics.consecutive_correct = 2
	other = (HEADER + "Z1,single,p,x,y,,,,A\n").encode("gbk")
	store.replace_all(parse_delimited(other))
	assert store.lookup_by_id("Q1") is None
	store.replace_all(parse_delimited(sample_bytes))
	assert store.lookup_by_id("Q1").statistics.consecutive_correct == 2


def test_list_eligible_preserves_bank_order(sample_bytes):
	store = QuestionStore(parse_delimited(sample_bytes))
	store.lookup_by_id("Q2").statistics.consecutive_correct = 3
	assert [q.id for q in store.list_eligible(3)] == ["Q1", "Q3"]
	assert [q.id for q in store.list_eligible(4)] == ["Q1", "Q2", "Q3"]


def test_failed_import_leaves_bank_untouched(ctx, persistence):
	before = [q.id for q in ctx.store.questions]
	with pytest.raises(IngestionError):
		import_bank(ctx, persistence, "broken.csv", (HEADER + "1,single,p,x,y,,,,E\n").encode("gbk"))
	assert [q.id for q in ctx.store.questions] == before
	assert [q.id for q in persistence.load_questions()] == before


def test_import_persists_bank_and_stats(ctx, persistence):
	assert [q.id for q in persistence.load_questions()] == ["Q1", "Q2", "Q3"]
	assert set(persistence.load_stats()) == {"Q1", "Q2", "Q3"}


def test_second_import_while_pending_is_rejected(ctx):
	with import_slot(ctx):
		with pytest.raises(ValidationGuardError):
			with import_slot(ctx):
				pass
	assert ctx.import_in_progress is False
