import pytest
from utils.config_parsing import split_list, split_floats, split_cuts


@pytest.mark.parametrize("raw, expected", [
    ("a.parquet, b.parquet", ["a.parquet", "b.parquet"]),
    ("a b,c", ["a", "b", "c"]),
    (["a", " b ", ""], ["a", "b"]),
    ("", []),
    (None, []),
])
def test_split_list(raw, expected):
    assert split_list(raw) == expected


def test_split_floats():
    assert split_floats("0.5 1, 2") == [0.5, 1.0, 2.0]
    assert split_floats([1, 2.5]) == [1.0, 2.5]
    assert split_floats(3) == [3.0]
    with pytest.raises(ValueError):
        split_floats("a")


def test_split_cuts_strips_quotes():
    raw = "'n_pfps > 0', \"score > 0.5 && x < 3\" ,  plain == 1 ,,"
    assert split_cuts(raw) == ["n_pfps > 0", "score > 0.5 && x < 3", "plain == 1"]


def test_split_cuts_list():
    assert split_cuts(["'a > 1'", " b < 2 "]) == ["a > 1", "b < 2"]
    assert split_cuts("") == []
