"""
Unit tests for the template validator.

Run: pytest tests/unit/test_template_validator.py -v
"""

import pytest

from config.field_catalog import get_field_catalog
from exceptions import (
    DuplicateTargetFieldError,
    ProcessingNotAllowedError,
    UnknownTargetFieldError,
)
from models.mapping_template import FieldRule
from services.template_validator import TemplateValidator
from tests.factories import rule


@pytest.fixture
def validator():
    return TemplateValidator(get_field_catalog())


def rules(*payloads):
    return [FieldRule.model_validate(p) for p in payloads]


class TestValidate:
    """Header comparison."""

    def test_all_fields_present(self, validator):
        template = rules(rule("order_number", "Номер заказа"), rule("telephone", "Телефон"))

        result = validator.validate(template, ["Номер заказа", "Телефон", "Комментарий"])

        assert result.all_required_found is True
        assert [m.target_field for m in result.found_fields] == ["order_number", "telephone"]
        assert result.unused_file_headers == ["Комментарий"]
        assert result.error_messages == []

    def test_missing_field_reported(self, validator):
        template = rules(rule("order_number", "Номер заказа"), rule("telephone", "Телефон"))

        result = validator.validate(template, ["Номер заказа"])

        assert result.all_required_found is False
        assert len(result.missing_fields) == 1
        missing = result.missing_fields[0]
        assert missing.template_field == "Телефон"
        assert missing.system_field == "Telephone"
        assert result.error_messages == [
            'Template field "Телефон" (for system field "Telephone") is missing from the file.'
        ]

    def test_default_only_rules_not_checked(self, validator):
        template = rules(rule("order_number", "Заказ"), rule("city", None, default_value="Москва"))

        result = validator.validate(template, ["Заказ"])

        assert result.all_required_found is True
        assert len(result.found_fields) == 1

    def test_header_comparison_is_exact(self, validator):
        template = rules(rule("telephone", "Телефон"))

        result = validator.validate(template, ["телефон"])

        assert result.all_required_found is False


class TestCheckRules:
    """Catalog checks on rule sets."""

    def test_valid_rules_pass(self, validator):
        validator.check_rules(rules(
            rule("telephone", "Телефон", "REGEXP", pattern=r"\d+", group=0),
            rule("order_date", "Дата", "EXTRACT_DATETIME", format="DD.MM.YYYY"),
        ))

    def test_unknown_target(self, validator):
        with pytest.raises(UnknownTargetFieldError) as exc_info:
            validator.check_rules(rules(rule("shoe_size", "Размер")))

        assert exc_info.value.details["target_field"] == "shoe_size"

    def test_function_not_allowed(self, validator):
        with pytest.raises(ProcessingNotAllowedError) as exc_info:
            validator.check_rules(rules(rule("telephone", "Телефон", "LEFT", length=3)))

        assert exc_info.value.details["function"] == "LEFT"
        assert "REGEXP" in exc_info.value.details["allowed"]

    def test_duplicate_target(self, validator):
        with pytest.raises(DuplicateTargetFieldError) as exc_info:
            validator.check_rules(rules(rule("telephone", "Телефон"), rule("telephone", "Моб")))

        assert exc_info.value.details["target_fields"] == ["telephone"]


class TestSuggestMapping:
    """Alias-based suggestions for a sample file."""

    def test_exact_aliases(self, validator):
        suggestions = validator.suggest_mapping(["Номер заказа", "ТЕЛЕФОН", "Город"])

        by_header = {s.source_field: s.target_field for s in suggestions}
        assert by_header == {
            "Номер заказа": "order_number",
            "ТЕЛЕФОН": "telephone",
            "Город": "city",
        }

    def test_contained_alias(self, validator):
        suggestions = validator.suggest_mapping(["Телефон клиента"])

        assert suggestions[0].target_field == "telephone"
        assert suggestions[0].label == "Telephone"

    def test_each_target_used_once(self, validator):
        suggestions = validator.suggest_mapping(["Телефон", "Phone"])

        assert [s.target_field for s in suggestions] == ["telephone"]

    def test_unknown_headers_skipped(self, validator):
        assert validator.suggest_mapping(["xyz", ""]) == []
