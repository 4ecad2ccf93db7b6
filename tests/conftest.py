import pytest

from quizbank.services.exam_engine import ExamEngine
from quizbank.services.persistence import MemoryKeyValueStore, StatePersistence
from quizbank.services.question_store import import_bank
from quizbank.services.scheduler import DeferredScheduler

SAMPLE_CSV = (
	"题号,题型,题目,选项A,选项B,选项C,选项D,选项E,答案\r\n"
	"Q1,单选,首都是哪里,上海,北京,广州,深圳,,B\r\n"
	"Q2,多选,\"哪些是偶数,请选择\",2,3,4,5,,AC\r\n"
	"Q3,判断,地球是平的,,,,,,A\r\n"
)


class FakeClock:
	def __init__(self) -> None:
		self.now = 0.0

	def __call__(self) -> float:
		return self.now


@pytest.fixture
def sample_bytes() -> bytes:
	return SAMPLE_CSV.encode("gbk")


@pytest.fixture
def backend():
	return MemoryKeyValueStore()


@pytest.fixture
def persistence(backend):
	return StatePersistence(backend)


@pytest.fixture
def clock():
	return FakeClock()


@pytest.fixture
def scheduler(clock):
	return DeferredScheduler(clock=clock)


@pytest.fixture
def confirmations():
	return []


@pytest.fixture
def engine(persistence, scheduler, confirmations):
	def confirm(message: str) -> bool:
		confirmations.append(message)
		return True
	return ExamEngine(persistence, confirm=confirm, scheduler=scheduler, grace_seconds=1.5)


@pytest.fixture
def ctx(engine, persistence, sample_bytes):
	context = engine.load_context()
	import_bank(context, persistence, "bank.csv", sample_bytes)
	return context
