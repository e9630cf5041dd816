import pytest

from bookmap.engine.batch import ImportBatchProcessor, bind_rows
from bookmap.engine.errors import ConfigurationError
from bookmap.engine.resolver import MappingResolver
from bookmap.engine.types import BatchSummary, CanonicalFieldSpec, TabularSource
from bookmap.engine.validate import RecordValidator, check_mappings, preview_mapping


def _fields():
    return [
        CanonicalFieldSpec("guest_name", "Guest Name", required=True),
        CanonicalFieldSpec("guest_email", "Guest Email"),
        CanonicalFieldSpec("check_in_date", "Check-in Date", value_kind="date"),
        CanonicalFieldSpec("total", "Total", value_kind="number"),
    ]


def _resolver():
    r = MappingResolver(_fields())
    r.update({"guest_name": "Name", "guest_email": "Email", "check_in_date": "Arrival", "total": "Total"})
    return r


def _source(rows):
    return TabularSource.from_table(["Name", "Email", "Arrival", "Total"], rows)


def _validate(rows, existing=()):
    return RecordValidator(_fields()).validate_batch(bind_rows(_source(rows)), _resolver(), existing)


def test_dedupe_against_existing_and_within_batch():
    out = _validate(
        [
            ["Ann", "a@x.com", "2024-05-01", "10"],
            ["Bob", "b@x.com", "2024-05-02", "20"],
            ["Bea", "B@X.com ", "2024-05-03", "30"],
        ],
        existing={"A@x.com"},
    )
    assert [(r.is_valid, r.is_duplicate) for r in out] == [(True, True), (True, False), (True, True)]
    assert out[0].errors == ("Guest Email already exists",)
    assert out[2].errors == ("Guest Email is duplicated in this import",)
    assert [r.ordinal for r in out] == [1, 2, 3]
    assert BatchSummary.from_rows(out) == BatchSummary(total=3, valid=1, duplicate=2, invalid=0)


def test_required_and_format_errors():
    out = _validate(
        [
            ["  ", "a@x.com", "2024-05-01", "10"],
            ["Ann", "not-an-email", "2024-05-01", "10"],
            ["Bob", "", "someday", "ten"],
        ]
    )
    assert out[0].errors == ("Guest Name is required",)
    assert out[1].errors == ("Guest Email is not a valid email address",)
    assert not out[2].is_valid
    assert any("Check-in Date must be a date" in e for e in out[2].errors)
    assert any("Total must be a number" in e for e in out[2].errors)


def test_values_are_coerced():
    out = _validate([["Ann", "", "05/01/2024", "$1,250.50"]])
    rec = out[0].record
    assert out[0].is_committable
    assert rec["check_in_date"] == "2024-05-01"
    assert rec["total"] == 1250.5
    assert rec["guest_email"] is None


def test_invalid_rows_still_claim_their_key():
    out = _validate(
        [
            ["", "a@x.com", "2024-05-01", "10"],
            ["Ann", "a@x.com", "2024-05-01", "10"],
        ]
    )
    assert not out[0].is_valid
    assert out[1].is_duplicate


def test_round_trip_through_tabular_source():
    fields = _fields()
    proc = ImportBatchProcessor(fields)
    first = proc.run(
        _source([["Ann", "a@x.com", "2024-05-01", "10.5"], ["Bob", "", "2024-06-01", "7"]]),
        _resolver(),
    )
    assert len(first.committable) == 2

    identity = MappingResolver(fields)
    identity.update({f.target_field: f.target_field for f in fields})
    again = proc.run(TabularSource.from_records(first.committable), identity)
    assert again.committable == first.committable
    assert all(r.is_valid for r in again.preview)


def test_unknown_dedupe_field():
    with pytest.raises(ConfigurationError, match="Unknown dedupe field"):
        RecordValidator(_fields(), dedupe_field="phone")


def test_preview_and_check_report():
    row = bind_rows(_source([["A" * 60, "", "2024-05-01", "abc"]]))[0]
    r = _resolver()
    preview = preview_mapping(row, r)
    assert preview["guest_name"].preview == "A" * 50 + "..."
    assert preview["total"].error is not None
    assert preview["guest_email"].preview == "No value"

    report = check_mappings(row, r, "tabular")
    assert report.is_valid
    assert report.base_complete

    empty = MappingResolver(_fields())
    report = check_mappings(row, empty, "tabular")
    assert not report.is_valid
    assert report.missing_fields == ["guest_name"]
