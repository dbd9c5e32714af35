"""
Unit tests for the field-mapping rule engine.

Run: pytest tests/unit/test_rule_engine.py -v
"""

from datetime import date, datetime
import pytest

from config.field_catalog import get_field_catalog
from models.import_session import RowErrorType
from models.mapping_template import FieldRule
from parsers.spreadsheet_parser import SpreadsheetRow
from services.rule_engine import RuleEngine, RowTransformError, apply_processing


# ===================
# FIXTURES
# ===================

@pytest.fixture
def engine():
    """Engine over the default catalog."""
    return RuleEngine(get_field_catalog(), error_sample_limit=5, sample_size=3)


def make_rule(target, source, function="NONE", default=None, **params):
    processing = {"function": function}
    if params:
        processing["params"] = params
    return FieldRule(
        target_field=target,
        source_field=source,
        processing=processing,
        default_value=default,
    )


def make_row(values, row_number=2):
    return SpreadsheetRow(row_number=row_number, values=values)


def process(value, function, **params):
    return apply_processing(value, make_rule("order_number", "x", function, **params).processing)


# ===================
# PROCESSING FUNCTIONS
# ===================

class TestNone:
    """NONE passes values through."""

    def test_passthrough(self, engine):
        outcome = engine.evaluate_row(make_row({"Заказ": "A-100"}), [make_rule("order_number", "Заказ")])

        assert outcome.record == {"order_number": "A-100"}
        assert outcome.errors == []

    def test_blank_uses_default(self, engine):
        outcome = engine.evaluate_row(
            make_row({"Город": None}),
            [make_rule("city", "Город", default="Москва")],
        )

        assert outcome.record == {"city": "Москва"}

    def test_default_skips_transformation(self, engine):
        outcome = engine.evaluate_row(
            make_row({"Заказ": "  "}),
            [make_rule("order_number", "Заказ", "LEFT", default="UNKNOWN", length=2)],
        )

        assert outcome.record == {"order_number": "UNKNOWN"}

    def test_blank_without_default_is_none(self, engine):
        outcome = engine.evaluate_row(make_row({"Город": None}), [make_rule("city", "Город")])

        assert outcome.record == {"city": None}
        assert outcome.errors == []


class TestLeftRight:
    """LEFT and RIGHT keep a prefix or suffix."""

    def test_left_takes_first_n(self):
        assert process("ABCDEF", "LEFT", length=3) == "ABC"

    def test_left_shorter_string_returned_whole(self):
        assert process("AB", "LEFT", length=5) == "AB"

    def test_right_takes_last_n(self):
        assert process("ORD-000123", "RIGHT", length=6) == "000123"

    def test_right_zero_length(self):
        assert process("ABC", "RIGHT", length=0) == ""

    def test_numbers_are_treated_as_text(self):
        assert process(123456, "RIGHT", length=3) == "456"


class TestSubstring:

    def test_zero_based_slice(self):
        assert process("2024-02-01", "SUBSTRING", start=5, length=2) == "02"

    def test_start_past_end_is_out_of_range(self):
        with pytest.raises(RowTransformError) as exc_info:
            process("ABC", "SUBSTRING", start=5, length=2)

        assert exc_info.value.error_type == RowErrorType.OUT_OF_RANGE


class TestSplit:

    def test_one_based_part(self):
        assert process("Иванов Иван", "SPLIT", delimiter=" ", part=2) == "Иван"

    def test_missing_part_is_out_of_range(self):
        with pytest.raises(RowTransformError) as exc_info:
            process("Иванов", "SPLIT", delimiter=" ", part=2)

        assert exc_info.value.error_type == RowErrorType.OUT_OF_RANGE


class TestReplace:

    def test_replaces_first_occurrence(self):
        assert process("a-b-c", "REPLACE", search="-", replace="") == "ab-c"

    def test_literal_not_regex(self):
        assert process("1.5.2", "REPLACE", search=".", replace=",") == "1,5.2"

    def test_empty_search_is_noop(self):
        assert process("abc", "REPLACE", search="", replace="x") == "abc"


class TestRegexp:

    def test_returns_group(self):
        assert process("Order #12345 paid", "REGEXP", pattern=r"#(\d+)", group=1) == "12345"

    def test_group_zero_is_whole_match(self):
        assert process("tel 89161234567", "REGEXP", pattern=r"\d{11}", group=0) == "89161234567"

    def test_no_match(self):
        with pytest.raises(RowTransformError) as exc_info:
            process("no digits", "REGEXP", pattern=r"\d+", group=0)

        assert exc_info.value.error_type == RowErrorType.NO_MATCH

    def test_unmatched_optional_group_is_no_match(self):
        with pytest.raises(RowTransformError) as exc_info:
            process("abc", "REGEXP", pattern=r"abc(\d)?", group=1)

        assert exc_info.value.error_type == RowErrorType.NO_MATCH

    def test_group_beyond_pattern_is_out_of_range(self):
        with pytest.raises(RowTransformError) as exc_info:
            process("abc", "REGEXP", pattern=r"(a)", group=3)

        assert exc_info.value.error_type == RowErrorType.OUT_OF_RANGE


class TestExtractDate:

    def test_extract_date_with_format(self):
        assert process("01.02.2024", "EXTRACT_DATE", format="DD.MM.YYYY") == date(2024, 2, 1)

    def test_extract_datetime_embedded_in_text(self):
        result = process("Заказ от 01.02.2024 9:05:00", "EXTRACT_DATETIME", format="DD.MM.YYYY H:mm:ss")

        assert result == datetime(2024, 2, 1, 9, 5, 0)

    def test_dotted_time_format(self):
        result = process("2024.02.01 10.15.30", "EXTRACT_DATETIME", format="YYYY.MM.DD H.mm.ss")

        assert result == datetime(2024, 2, 1, 10, 15, 30)

    def test_without_format_tries_common_formats(self):
        assert process("2024-02-01", "EXTRACT_DATE") == date(2024, 2, 1)

    def test_date_cell_passes_through(self):
        cell = datetime(2024, 2, 1, 12, 0)

        assert process(cell, "EXTRACT_DATETIME", format="DD.MM.YYYY") == cell

    def test_unparsable_is_format_error(self):
        with pytest.raises(RowTransformError) as exc_info:
            process("вчера", "EXTRACT_DATE", format="DD.MM.YYYY")

        assert exc_info.value.error_type == RowErrorType.FORMAT_ERROR


# ===================
# ROW EVALUATION
# ===================

class TestEvaluateRow:
    """Per-row behaviour."""

    def test_unbound_targets_are_omitted(self, engine):
        outcome = engine.evaluate_row(
            make_row({"Заказ": "A-1", "Город": "Казань"}),
            [make_rule("order_number", "Заказ")],
        )

        assert set(outcome.record) == {"order_number"}

    def test_rule_without_source_or_default_is_skipped(self, engine):
        outcome = engine.evaluate_row(
            make_row({"Заказ": "A-1"}),
            [make_rule("order_number", "Заказ"), make_rule("city", None)],
        )

        assert set(outcome.record) == {"order_number"}

    def test_default_only_rule_fills_every_row(self, engine):
        outcome = engine.evaluate_row(make_row({}), [make_rule("subdivision", None, default="Север")])

        assert outcome.record == {"subdivision": "Север"}

    def test_failure_keeps_other_fields(self, engine):
        rules = [
            make_rule("name", "Name"),
            make_rule("telephone", "Phone", "REGEXP", pattern=r"\d{10}", group=0),
        ]

        outcome = engine.evaluate_row(make_row({"Name": "Ivan", "Phone": "+7 916 123-45-67"}, 7), rules)

        assert outcome.failed
        assert outcome.record["name"] == "Ivan"
        assert outcome.record["telephone"] is None
        assert len(outcome.errors) == 1
        error = outcome.errors[0]
        assert error.field_name == "telephone"
        assert error.error_type == RowErrorType.NO_MATCH
        assert error.row_number_in_file == 7
        assert error.original_value == "+7 916 123-45-67"

    def test_type_mismatch_for_numeric_field(self, engine):
        outcome = engine.evaluate_row(make_row({"Кол-во": "много"}), [make_rule("quantity", "Кол-во")])

        assert outcome.errors[0].error_type == RowErrorType.TYPE_MISMATCH

    def test_numeric_text_with_separators_passes(self, engine):
        outcome = engine.evaluate_row(
            make_row({"Сумма": "1 200,50", "Кол-во": "1,000"}),
            [make_rule("revenue", "Сумма"), make_rule("quantity", "Кол-во")],
        )

        assert outcome.errors == []
        assert outcome.record["revenue"] == "1 200,50"

    def test_decimal_comma_quantity_is_type_mismatch(self, engine):
        outcome = engine.evaluate_row(make_row({"Кол-во": "1,5"}), [make_rule("quantity", "Кол-во")])

        assert outcome.errors[0].error_type == RowErrorType.TYPE_MISMATCH
        assert outcome.errors[0].original_value == "1,5"

    def test_empty_record_detected(self, engine):
        outcome = engine.evaluate_row(make_row({"Заказ": None}), [make_rule("order_number", "Заказ")])

        assert outcome.is_empty


# ===================
# PREVIEW AND COMMIT
# ===================

class TestPreview:
    """Preview fan-out and error summary."""

    def test_counts_and_sample(self, engine):
        rules = [make_rule("telephone", "Phone", "REGEXP", pattern=r"\d{11}", group=0)]
        rows = [
            make_row({"Phone": "89161234567"}, 2),
            make_row({"Phone": "n/a"}, 3),
            make_row({"Phone": "tel: 89031112233"}, 4),
        ]

        result = engine.run_preview(rows, rules)

        assert result.rows_ok == 2
        assert result.rows_failed == 1
        assert result.sample_rows == [{"telephone": "89161234567"}, {"telephone": "89031112233"}]
        assert result.error_summary.total_errors == 1
        assert result.error_summary.rows_with_errors == 1
        assert result.error_summary.errors_by_type == {"no_match": 1}

    def test_detailed_errors_are_bounded(self, engine):
        rules = [make_rule("quantity", "Qty")]
        rows = [make_row({"Qty": "bad"}, i) for i in range(2, 12)]

        result = engine.run_preview(rows, rules)

        assert result.error_summary.total_errors == 10
        assert len(result.error_summary.detailed_errors) == 5

    def test_zero_error_sample_keeps_counting(self):
        quiet = RuleEngine(get_field_catalog(), error_sample_limit=0, sample_size=0)
        rows = [make_row({"Qty": "bad"}, i) for i in range(2, 6)]

        result = quiet.run_preview(rows, [make_rule("quantity", "Qty")])

        assert result.error_summary.total_errors == 4
        assert result.error_summary.detailed_errors == []
        assert result.sample_rows == []

    def test_sample_is_bounded(self, engine):
        rows = [make_row({"Заказ": f"A-{i}"}, i) for i in range(2, 10)]

        result = engine.run_preview(rows, [make_rule("order_number", "Заказ")])

        assert len(result.sample_rows) == 3

    def test_dates_serialized_in_sample(self, engine):
        rules = [make_rule("order_date", "Дата", "EXTRACT_DATETIME", format="DD.MM.YYYY HH:mm:ss")]

        result = engine.run_preview([make_row({"Дата": "01.02.2024 10:00:00"})], rules)

        assert result.sample_rows == [{"order_date": "2024-02-01T10:00:00"}]

    def test_commit_returns_every_outcome(self, engine):
        rows = [make_row({"Заказ": f"A-{i}"}, i) for i in range(2, 200)]

        outcomes = engine.run_commit(rows, [make_rule("order_number", "Заказ")])

        assert len(outcomes) == 198
        assert all(not o.failed for o in outcomes)


class TestTelephoneExample:
    """Template {telephone <- Phone, REGEXP \\d{10}} against a formatted number."""

    def test_formatted_number_does_not_match(self, engine):
        rules = [make_rule("telephone", "Phone", "REGEXP", pattern=r"\d{10}", group=0)]
        row = make_row({"Name": "Ivan", "Phone": "+7 916 123-45-67"})

        result = engine.run_preview([row], rules)

        assert result.rows_failed == 1
        assert result.rows_ok == 0
        assert result.error_summary.detailed_errors[0].field_name == "telephone"
        assert result.error_summary.detailed_errors[0].error_type == RowErrorType.NO_MATCH

    def test_compact_number_matches(self, engine):
        rules = [make_rule("telephone", "Phone", "REGEXP", pattern=r"\d{10}", group=0)]
        row = make_row({"Name": "Ivan", "Phone": "+79161234567"})

        result = engine.run_preview([row], rules)

        assert result.sample_rows == [{"telephone": "7916123456"}]
