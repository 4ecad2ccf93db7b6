import io

import pytest
from openpyxl import Workbook
from openpyxl.styles import PatternFill

from quizbank.errors import IngestionError
from quizbank.models import QuestionType
from quizbank.services.tabular_parser import normalize_color, parse_delimited, parse_file, parse_spreadsheet

HEADER = "id,type,prompt,A,B,C,D,E,answer\n"


def _csv(body: str, encoding: str = "gbk") -> bytes:
	return (HEADER + body).encode(encoding)


def test_sample_bank_parses_every_row(sample_bytes):
	questions = parse_delimited(sample_bytes)
	assert [q.id for q in questions] == ["Q1", "Q2", "Q3"]
	assert [q.type for q in questions] == [QuestionType.SINGLE, QuestionType.MULTI, QuestionType.BOOLEAN]
	for q in questions:
		assert q.options
		assert set(q.answer_labels()) <= set(q.options)
		assert q.source == "delimited"
		assert q.option_colors is None


def test_quoted_field_keeps_delimiter_and_collapses_newline():
	questions = parse_delimited(_csv('1,single,"a,b\nc",x,y,,,,A\n'))
	assert questions[0].prompt == "a,b c"


def test_doubled_quote_is_literal():
	questions = parse_delimited(_csv('1,single,"say ""hi""",x,y,,,,B\n'))
	assert questions[0].prompt == 'say "hi"'


def test_newline_inside_quoted_option_continues_row():
	questions = parse_delimited(_csv('1,single,prompt,"first\r\n line",second,,,,A\n2,single,next,x,y,,,,B\n'))
	assert len(questions) == 2
	assert questions[0].options["A"] == "first line"


def test_sparse_options_are_omitted():
	questions = parse_delimited(_csv("1,single,p,  ,B text,,D text,,B\n"))
	assert questions[0].options == {"B": "B text", "D": "D text"}


def test_boolean_options_are_forced():
	questions = parse_delimited(_csv("1,判断,p,yes,no,maybe,x,y,B\n"))
	assert questions[0].options == {"A": "对", "B": "错"}
	assert questions[0].answer == "B"


def test_boolean_answer_words_map_to_labels():
	questions = parse_delimited(_csv("1,判断,p,,,,,,对\n2,判断,q,,,,,,错\n"))
	assert [q.answer for q in questions] == ["A", "B"]


def test_multi_answer_separators_are_dropped():
	questions = parse_delimited(_csv("1,多选,p,a,b,c,d,e,\"a, c、e\"\n"))
	assert questions[0].answer == "ACE"


def test_short_rows_are_skipped():
	questions = parse_delimited(_csv("1,single,p,x,y\n2,single,q,x,y,,,,A\n"))
	assert [q.id for q in questions] == ["2"]


def test_blank_lines_before_header_are_ignored():
	data = ("\n\n" + HEADER + "1,single,p,x,y,,,,A\n").encode("gbk")
	assert len(parse_delimited(data)) == 1


def test_leading_bom_is_dropped():
	data = ("\ufeff" + HEADER + "1,single,p,x,y,,,,A\n").encode("utf-8")
	assert parse_delimited(data, encoding="utf-8")[0].id == "1"


def test_answer_outside_options_rejects_whole_file():
	with pytest.raises(IngestionError, match="row 3"):
		parse_delimited(_csv("1,single,p,x,y,,,,A\n2,single,q,x,y,,,,C\n"))


def test_unknown_type_is_rejected():
	with pytest.raises(IngestionError, match="unknown question type"):
		parse_delimited(_csv("1,essay,p,x,y,,,,A\n"))


def test_duplicate_ids_are_rejected():
	with pytest.raises(IngestionError, match="duplicate"):
		parse_delimited(_csv("1,single,p,x,y,,,,A\n1,single,q,x,y,,,,B\n"))


def test_header_only_file_is_an_error():
	with pytest.raises(IngestionError, match="no questions"):
		parse_delimited(HEADER.encode("gbk"))


def test_undecodable_bytes_are_an_error():
	with pytest.raises(IngestionError, match="cannot decode"):
		parse_delimited(b"\xff\xfe\xff" * 5, encoding="utf-8")


def test_parse_file_dispatches_on_extension(sample_bytes):
	assert len(parse_file("bank.CSV", sample_bytes)) == 3
	tsv = (HEADER.replace(",", "\t") + "1\tsingle\tp\tx\ty\t\t\t\tA\n").encode("gbk")
	assert parse_file("bank.tsv", tsv)[0].options == {"A": "x", "B": "y"}
	with pytest.raises(IngestionError, match="unsupported"):
		parse_file("bank.pdf", sample_bytes)


@pytest.mark.parametrize("raw,expected", [
	("FFFF0000", "#FF0000"),
	("00a1b2c3", "#A1B2C3"),
	("#abcdef", "#ABCDEF"),
	("12345", None),
	(None, None),
])
def test_normalize_color(raw, expected):
	assert normalize_color(raw) == expected


def _workbook_bytes() -> bytes:
	wb = Workbook()
	ws = wb.active
	ws.append(["id", "type", "prompt", "A", "B", "C", "D", "E", "answer"])
	ws.append([1, "单选", "line one\nline two", "red", "plain", "", None, None, "A"])
	ws.append([2, "多选", "p2", "x", "y", "z", None, None, "BC"])
	ws["D2"].fill = PatternFill(fill_type="solid", fgColor="FFFF0000")
	ws["E3"].fill = PatternFill(fill_type="solid", fgColor="00FF00", bgColor="0000FF")
	second = wb.create_sheet("ignored")
	second.append(["id", "type", "prompt", "A", "B", "C", "D", "E", "answer"])
	second.append(["x", "单选", "p", "a", "b", None, None, None, "A"])
	buf = io.BytesIO()
	wb.save(buf)
	return buf.getvalue()


def test_spreadsheet_reads_first_sheet_with_colors():
	questions = parse_spreadsheet(_workbook_bytes())
	assert [q.id for q in questions] == ["1", "2"]
	first, second = questions
	assert first.prompt == "line one line two"
	assert first.options == {"A": "red", "B": "plain"}
	assert first.option_colors == {"A": "#FF0000"}
	assert second.option_colors == {"B": "#00FF00"}
	assert all(q.source == "spreadsheet" for q in questions)


def test_spreadsheet_background_color_used_when_foreground_unset():
	wb = Workbook()
	ws = wb.active
	ws.append(["id", "type", "prompt", "A", "B", "C", "D", "E", "answer"])
	ws.append(["Q9", "单选", "p", "a", "b", None, None, None, "A"])
	ws["E2"].fill = PatternFill(fill_type="solid", bgColor="FF00FF00")
	buf = io.BytesIO()
	wb.save(buf)
	(question,) = parse_spreadsheet(buf.getvalue())
	assert question.option_colors == {"B": "#00FF00"}


def test_spreadsheet_garbage_is_an_error():
	with pytest.raises(IngestionError, match="cannot read spreadsheet"):
		parse_spreadsheet(b"not a zip file")
