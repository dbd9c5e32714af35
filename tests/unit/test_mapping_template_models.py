"""
Unit tests for mapping template schemas.

Run: pytest tests/unit/test_mapping_template_models.py -v
"""

import pytest
from pydantic import ValidationError

from models.mapping_template import (
    FieldRule,
    LeftProcessing,
    MappingTemplateCreate,
    MappingTemplateUpdate,
    NoneProcessing,
    RegexpProcessing,
    find_duplicate_targets,
)
from tests.factories import rule


class TestProcessingUnion:
    """Processing payloads parse into the variant named by function."""

    def test_missing_processing_is_none(self):
        parsed = FieldRule.model_validate({"target_field": "city", "source_field": "Город"})

        assert isinstance(parsed.processing, NoneProcessing)
        assert parsed.function == "NONE"

    def test_null_processing_is_none(self):
        parsed = FieldRule.model_validate({"target_field": "city", "source_field": "Город", "processing": None})

        assert isinstance(parsed.processing, NoneProcessing)

    def test_null_params_dropped_for_none(self):
        parsed = FieldRule.model_validate(
            {"target_field": "city", "source_field": "Город", "processing": {"function": "NONE", "params": None}}
        )

        assert isinstance(parsed.processing, NoneProcessing)

    def test_variant_selected(self):
        parsed = FieldRule.model_validate(rule("order_number", "Заказ", "LEFT", length=4))

        assert isinstance(parsed.processing, LeftProcessing)
        assert parsed.processing.params.length == 4

    def test_regexp_group_defaults_to_whole_match(self):
        parsed = FieldRule.model_validate(rule("telephone", "Телефон", "REGEXP", pattern=r"\d+"))

        assert isinstance(parsed.processing, RegexpProcessing)
        assert parsed.processing.params.group == 0

    def test_unknown_function_rejected(self):
        with pytest.raises(ValidationError):
            FieldRule.model_validate(rule("city", "Город", "UPPERCASE"))

    def test_missing_required_params_rejected(self):
        with pytest.raises(ValidationError):
            FieldRule.model_validate(rule("order_number", "Заказ", "LEFT"))

    def test_bad_regex_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            FieldRule.model_validate(rule("telephone", "Телефон", "REGEXP", pattern="(unclosed"))

        assert "Invalid regular expression" in str(exc_info.value)

    def test_negative_length_rejected(self):
        with pytest.raises(ValidationError):
            FieldRule.model_validate(rule("order_number", "Заказ", "RIGHT", length=-1))

    def test_split_delimiter_whitespace_kept(self):
        parsed = FieldRule.model_validate(rule("name", "ФИО", "SPLIT", delimiter=" ", part=2))

        assert parsed.processing.params.delimiter == " "


class TestFieldRule:
    """Source and default normalization."""

    def test_blank_source_is_unbound(self):
        parsed = FieldRule.model_validate(rule("city", "   "))

        assert parsed.source_field is None
        assert parsed.is_bound is False

    def test_default_only_rule_is_bound(self):
        parsed = FieldRule.model_validate(rule("city", None, default_value="Москва"))

        assert parsed.is_bound is True

    def test_source_whitespace_collapsed(self):
        parsed = FieldRule.model_validate(rule("order_date", "  Дата   заказа "))

        assert parsed.source_field == "Дата заказа"


class TestDuplicateTargets:
    """One rule per target field."""

    def test_find_duplicates(self):
        rules = [FieldRule.model_validate(r) for r in (
            rule("telephone", "A"), rule("city", "B"), rule("telephone", "C"),
        )]

        assert find_duplicate_targets(rules) == ["telephone"]

    def test_create_rejects_duplicates(self):
        with pytest.raises(ValidationError) as exc_info:
            MappingTemplateCreate(
                client_id="client-1",
                name="Dup",
                rules=[rule("telephone", "A"), rule("telephone", "B")],
            )

        assert "telephone" in str(exc_info.value)

    def test_update_rejects_duplicates(self):
        with pytest.raises(ValidationError):
            MappingTemplateUpdate(rules=[rule("city", "A"), rule("city", "B")])

    def test_create_requires_rules(self):
        with pytest.raises(ValidationError):
            MappingTemplateCreate(client_id="client-1", name="Empty", rules=[])
