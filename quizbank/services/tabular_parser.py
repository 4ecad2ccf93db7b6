import csv
import io
import logging
import os
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

from openpyxl import load_workbook
from pydantic import ValidationError

from ..config import settings
from ..errors import IngestionError
from ..models import OPTION_LABELS, Question, QuestionType

logger = logging.getLogger("quizbank")

MIN_FIELDS = 9
UNSET_RGB = "00000000"
BOOLEAN_OPTIONS = {"A": "对", "B": "错"}

_TYPE_ALIASES = {
	"单选": QuestionType.SINGLE,
	"single": QuestionType.SINGLE,
	"single-choice": QuestionType.SINGLE,
	"多选": QuestionType.MULTI,
	"multi": QuestionType.MULTI,
	"multi-choice": QuestionType.MULTI,
	"判断": QuestionType.BOOLEAN,
	"boolean": QuestionType.BOOLEAN,
	"true-false": QuestionType.BOOLEAN,
}
_BOOLEAN_ANSWERS = {
	"对": "A", "正确": "A", "√": "A", "T": "A", "TRUE": "A",
	"错": "B", "错误": "B", "×": "B", "F": "B", "FALSE": "B",
}
_NEWLINES = re.compile(r"\s*[\r\n]+\s*")
ANSWER_SEPARATORS = re.compile(r"[\s,，、;；]+")


def _clean(value: Any) -> str:
	if value is None:
		return ""
	if isinstance(value, float) and value.is_integer():
		value = int(value)
	return _NEWLINES.sub(" ", str(value).strip())


def _resolve_type(raw: str, row_number: int) -> QuestionType:
	key = raw.strip()
	qtype = _TYPE_ALIASES.get(key) or _TYPE_ALIASES.get(key.lower())
	if qtype is None:
		raise IngestionError(f"row {row_number}: unknown question type {raw!r}")
	return qtype


def _normalize_answer(raw: str, qtype: QuestionType) -> str:
	answer = ANSWER_SEPARATORS.sub("", raw).upper()
	if qtype == QuestionType.BOOLEAN:
		return _BOOLEAN_ANSWERS.get(answer, answer)
	return answer


def _build_question(fields: Sequence[Any], row_number: int, colors: Optional[Dict[str, str]] = None, source: str = "delimited") -> Question:
	qid, raw_type, prompt = (_clean(v) for v in fields[:3])
	option_cells = [_clean(v) for v in fields[3:8]]
	if not qid:
		raise IngestionError(f"row {row_number}: missing question id")
	qtype = _resolve_type(raw_type, row_number)
	if qtype == QuestionType.BOOLEAN:
		options = dict(BOOLEAN_OPTIONS)
	else:
		options = {label: text for label, text in zip(OPTION_LABELS, option_cells) if text}
	if colors is not None:
		colors = {label: color for label, color in colors.items() if label in options} or None
	try:
		return Question(
			id=qid,
			type=qtype,
			prompt=prompt,
			options=options,
			answer=_normalize_answer(_clean(fields[8]), qtype),
			option_colors=colors,
			source=source,
		)
	except ValidationError as e:
		messages = "; ".join(err["msg"] for err in e.errors())
		raise IngestionError(f"row {row_number}: {messages}") from e


def _collect(rows: Iterable[tuple[int, Sequence[Any], Optional[Dict[str, str]]]], source: str) -> List[Question]:
	questions: List[Question] = []
	seen_ids = set()
	header_skipped = False
	for row_number, fields, colors in rows:
		if not any(_clean(v) for v in fields):
			continue
		if not header_skipped:
			header_skipped = True
			continue
		if len(fields) < MIN_FIELDS:
			logger.debug({"event": "row_skipped", "row": row_number, "fields": len(fields), "source": source})
			continue
		question = _build_question(fields, row_number, colors, source)
		if question.id in seen_ids:
			raise IngestionError(f"row {row_number}: duplicate question id {question.id!r}")
		seen_ids.add(question.id)
		questions.append(question)
	if not questions:
		raise IngestionError("no questions found in file")
	return questions


def _delimited_rows(text: str, delimiter: str):
	reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter, quotechar='"', doublequote=True, strict=False)
	try:
		for fields in reader:
			yield reader.line_num, fields, None
	except csv.Error as e:
		raise IngestionError(f"line {reader.line_num}: malformed delimited data ({e})") from e


def parse_delimited(data: bytes, encoding: str | None = None, delimiter: str | None = None) -> List[Question]:
	"""Parse a delimited question bank.

	Quoted fields may contain the delimiter, doubled quotes and newlines. The
	first non-blank row is treated as the header. Rows with fewer than nine
	fields are skipped; any other malformed row aborts the whole parse.
	"""
	encoding = encoding or settings.csv_encoding
	delimiter = delimiter or settings.csv_delimiter
	try:
		text = data.decode(encoding)
	except (UnicodeDecodeError, LookupError) as e:
		raise IngestionError(f"cannot decode file as {encoding}: {e}") from e
	text = text.lstrip("\ufeff")
	questions = _collect(_delimited_rows(text, delimiter), "delimited")
	logger.debug({"event": "delimited_parsed", "count": len(questions), "encoding": encoding})
	return questions


def normalize_color(value: Any) -> Optional[str]:
	"""Turn an RGB or ARGB hex string into ``#RRGGBB``; anything else is None."""
	if not isinstance(value, str):
		return None
	code = value.strip().lstrip("#")
	if len(code) == 8:
		code = code[2:]
	if len(code) != 6 or any(ch not in "0123456789abcdefABCDEF" for ch in code):
		return None
	return "#" + code.upper()


def _cell_color(cell) -> Optional[str]:
	if not getattr(cell, "has_style", False):
		return None
	fill = cell.fill
	if fill is None or getattr(fill, "fill_type", None) is None:
		return None
	for color in (getattr(fill, "fgColor", None), getattr(fill, "bgColor", None)):
		if color is not None and color.type == "rgb" and color.rgb != UNSET_RGB:
			normalized = normalize_color(color.rgb)
			if normalized:
				return normalized
	return None


def _sheet_rows(sheet):
	for row_number, cells in enumerate(sheet.iter_rows(), start=1):
		values = [cell.value for cell in cells]
		colors = {}
		for label, cell in zip(OPTION_LABELS, cells[3:8]):
			color = _cell_color(cell)
			if color:
				colors[label] = color
		yield row_number, values, colors


def parse_spreadsheet(data: bytes) -> List[Question]:
	"""Parse the first sheet of an xlsx workbook, keeping option fill colors."""
	try:
		workbook = load_workbook(io.BytesIO(data), data_only=True)
	except Exception as e:
		raise IngestionError(f"cannot read spreadsheet: {e}") from e
	try:
		if not workbook.worksheets:
			raise IngestionError("spreadsheet has no sheets")
		questions = _collect(_sheet_rows(workbook.worksheets[0]), "spreadsheet")
	finally:
		workbook.close()
	logger.debug({"event": "spreadsheet_parsed", "count": len(questions), "colored": sum(1 for q in questions if q.option_colors)})
	return questions


def parse_file(filename: str, data: bytes) -> List[Question]:
	ext = os.path.splitext(filename or "")[1].lower()
	if ext in (".csv", ".txt"):
		return parse_delimited(data)
	if ext == ".tsv":
		return parse_delimited(data, delimiter="\t")
	if ext in (".xlsx", ".xlsm"):
		return parse_spreadsheet(data)
	raise IngestionError(f"unsupported file type {ext or filename!r}")
