import pandas as pd
import pytest

from jee_mock_test.models.question_model import MultiAnswer, NumericalAnswer, SingleAnswer
from jee_mock_test.services.answer_key import interpret_answer_value, load_answer_key_file, parse_answer_key


@pytest.mark.parametrize("raw, expected", [
    ("b", SingleAnswer(key="B")),
    (" a , c ", MultiAnswer(keys=frozenset({"A", "C"}))),
    ("A,B,", MultiAnswer(keys=frozenset({"A", "B"}))),
    ("25.50", NumericalAnswer(value=25.5)),
    (-3, NumericalAnswer(value=-3.0)),
    (4.75, NumericalAnswer(value=4.75)),
])
def test_interpret_answer_value(raw, expected):
    assert interpret_answer_value(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "   ", float("nan"), ","])
def test_blank_answers(raw):
    assert interpret_answer_value(raw) is None


def test_parse_answer_key_skips_bad_rows(caplog):
    key = parse_answer_key([
        (1, "B"),
        ("two", "C"),
        (0, "A"),
        (3, ""),
        ("4", "A,D"),
        (5.0, 12),
    ])
    assert key.entries == {
        1: SingleAnswer(key="B"),
        4: MultiAnswer(keys=frozenset({"A", "D"})),
        5: NumericalAnswer(value=12.0),
    }
    kinds = [d.kind for d in key.diagnostics]
    assert kinds == ["InvalidQuestionNumber", "InvalidQuestionNumber", "BlankAnswer"]
    assert "invalid question number 'two'" in caplog.text


def test_parse_answer_key_from_mapping():
    key = parse_answer_key({1: "a", 2: "3.5"})
    assert len(key) == 2
    assert key.get(2) == NumericalAnswer(value=3.5)
    assert key.get(99) is None


def test_load_csv(tmp_path):
    path = tmp_path / "key.csv"
    path.write_text("Question,Answer\n1,B\n2,\"A,C\"\n3,25.5\nx,D\n", encoding="utf-8")
    key = load_answer_key_file(str(path))
    assert key.get(1) == SingleAnswer(key="B")
    assert key.get(2) == MultiAnswer(keys=frozenset({"A", "C"}))
    assert key.get(3) == NumericalAnswer(value=25.5)
    assert len(key.diagnostics) == 1


def test_load_xlsx(tmp_path):
    path = tmp_path / "key.xlsx"
    pd.DataFrame({"Question": [1, 2, 3], "Answer": ["c", "A, B", 7.5]}).to_excel(path, index=False, engine="openpyxl")
    key = load_answer_key_file(str(path))
    assert key.entries == {
        1: SingleAnswer(key="C"),
        2: MultiAnswer(keys=frozenset({"A", "B"})),
        3: NumericalAnswer(value=7.5),
    }


def test_load_rejects_unknown_format(tmp_path):
    path = tmp_path / "key.txt"
    path.write_text("1,A\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_answer_key_file(str(path))


def test_load_missing_file(tmp_path):
    with pytest.raises(ValueError):
        load_answer_key_file(str(tmp_path / "nope.csv"))
