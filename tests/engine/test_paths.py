import pytest

from bookmap.engine.errors import ConfigurationError
from bookmap.engine.paths import (
    NestedExtractor,
    TabularExtractor,
    TabularRow,
    compile_path,
    extract,
    iter_leaves,
)
from bookmap.engine.types import TabularSource


def _payload():
    return {
        "data": {
            "guest": {"name": "Jane Doe", "emails": ["jane@x.com"]},
            "financeField": [
                {"name": "baseRate", "total": 100},
                {"name": "cleaningFee", "total": 25},
            ],
        }
    }


def test_tabular_cell_is_trimmed_and_otherwise_unchanged():
    src = TabularSource.from_table(["Guest Name", "Notes"], [["  Jane Doe  ", ""]])
    row = TabularRow(TabularExtractor(src.headers), src.rows[0])
    assert row.get("Guest Name") == "Jane Doe"
    assert row.get("Notes") == ""
    assert row.get("guest name") is None  # header lookup is case-sensitive


def test_dot_and_index_paths():
    doc = _payload()
    assert extract(doc, "data.guest.name") == "Jane Doe"
    assert extract(doc, "data.guest.emails[0]") == "jane@x.com"
    assert extract(doc, "data.financeField[1].total") == 25


def test_find_form():
    doc = _payload()
    expr = 'data.financeField.find(f => f.name === "cleaningFee").total'
    assert extract(doc, expr) == 25
    assert extract(doc, 'data.financeField.find(f => f.name === "petFee").total') is None


def test_envelope_fallback():
    doc = _payload()
    assert extract(doc, "guest.name") == "Jane Doe"
    assert NestedExtractor(envelope=None).extract(doc, "guest.name") is None


@pytest.mark.parametrize(
    "expr",
    ["data.missing.name", "data.guest", "data.guest.emails[5]", "data.guest.name.first"],
)
def test_misses_are_none(expr):
    assert extract(_payload(), expr) is None


@pytest.mark.parametrize(
    "expr, msg",
    [
        ('items.find(f => f.total > 3).total', "Unsupported find"),
        ('a.find(f => f.name === "x").b.find(g => g.name === "y").c', "Chained"),
        ("a..b", "Empty path segment"),
        ("a[x]", "Array index"),
        ("a.b.", "ends with"),
        (".".join(["k"] * 11), "deeper than 10"),
    ],
)
def test_unsupported_paths_rejected_at_configuration(expr, msg):
    with pytest.raises(ConfigurationError, match=msg):
        compile_path(expr)
    # extraction itself never raises
    assert extract(_payload(), expr) is None


def test_find_counts_toward_depth():
    coll = ".".join(["k"] * 9)
    assert compile_path(f'{coll}.find(f => f.name === "x").total').depth == 10
    with pytest.raises(ConfigurationError, match="deeper"):
        compile_path(f'{coll}.k.find(f => f.name === "x").total')


def test_iter_leaves_yields_full_paths_and_trailing_keys():
    leaves = {path: (key, value) for path, key, value in iter_leaves(_payload())}
    assert leaves["data.guest.name"] == ("name", "Jane Doe")
    assert leaves["data.guest.emails[0]"] == ("emails", "jane@x.com")
    assert leaves["data.financeField[0].total"] == ("total", 100)


def _nest(levels: int, key: str, value):
    """`key` reached through `levels` keys in total."""
    doc = {key: value}
    for _ in range(levels - 1):
        doc = {"nested": doc}
    return doc


def test_iter_leaves_stops_below_ten_levels():
    ten = "nested." * 9 + "leaf"
    assert list(iter_leaves(_nest(10, "leaf", "ok"))) == [(ten, "leaf", "ok")]
    assert list(iter_leaves(_nest(11, "leaf", "too deep"))) == []
    assert extract(_nest(10, "leaf", "ok"), ten) == "ok"
