"""
Template validator.

Cross-checks a template's rules against the catalog and against the
headers of an uploaded file. validate() only reports; callers decide
whether missing columns block the import.
"""

from typing import Iterable
import structlog

from config.field_catalog import FieldCatalog, ProcessingFunction
from exceptions import (
    DuplicateTargetFieldError,
    ProcessingNotAllowedError,
    UnknownTargetFieldError,
)
from models.import_session import FieldMatch, TemplateValidationResult
from models.mapping_template import FieldRule, MappingSuggestion, find_duplicate_targets
from utils.text_utils import normalize_header

logger = structlog.get_logger(__name__)


class TemplateValidator:
    """Template checks against the field catalog and file headers."""

    def __init__(self, catalog: FieldCatalog):
        self.catalog = catalog

    def check_rules(self, rules: Iterable[FieldRule]) -> None:
        """
        Verify rules against the catalog.

        Raises:
            UnknownTargetFieldError: Target field not in the catalog
            ProcessingNotAllowedError: Function not allowed for the field
            DuplicateTargetFieldError: Target field bound more than once
        """
        rules = list(rules)

        for rule in rules:
            target = self.catalog.get(rule.target_field)
            if target is None:
                raise UnknownTargetFieldError(rule.target_field)
            function = ProcessingFunction(rule.function)
            if not target.allows(function):
                raise ProcessingNotAllowedError(
                    rule.target_field,
                    function.value,
                    sorted(f.value for f in target.allowed_processing),
                )

        duplicates = find_duplicate_targets(rules)
        if duplicates:
            raise DuplicateTargetFieldError(duplicates)

    def validate(self, rules: Iterable[FieldRule], headers: list[str]) -> TemplateValidationResult:
        """
        Compare template source fields with file headers.

        Rules without a source field are not checked.
        """
        header_set = set(headers)
        found: list[FieldMatch] = []
        missing: list[FieldMatch] = []
        referenced: set[str] = set()

        for rule in rules:
            if not rule.source_field:
                continue
            match = FieldMatch(
                template_field=rule.source_field,
                target_field=rule.target_field,
                system_field=self.catalog.label_for(rule.target_field),
            )
            referenced.add(rule.source_field)
            if rule.source_field in header_set:
                found.append(match)
            else:
                missing.append(match)

        error_messages = [
            f'Template field "{m.template_field}" (for system field "{m.system_field}") '
            f"is missing from the file."
            for m in missing
        ]

        result = TemplateValidationResult(
            found_fields=found,
            missing_fields=missing,
            unused_file_headers=[h for h in headers if h not in referenced],
            all_required_found=not missing,
            error_messages=error_messages,
        )

        logger.info(
            "template_validated",
            found=len(found),
            missing=len(missing),
            unused=len(result.unused_file_headers)
        )
        return result

    def suggest_mapping(self, headers: list[str]) -> list[MappingSuggestion]:
        """
        Suggest a target field for file headers using catalog aliases.

        Exact alias matches win over containment; each target and header
        is used once.
        """
        alias_index: list[tuple[str, str]] = []
        for key, target in self.catalog.fields.items():
            names = {key, key.replace("_", " "), target.label, *target.aliases}
            for name in names:
                normalized = normalize_header(name)
                if normalized:
                    alias_index.append((normalized, key))

        normalized_headers = [(h, normalize_header(h)) for h in headers]
        used_targets: set[str] = set()
        suggestions: dict[str, str] = {}

        # Exact alias match
        for header, normalized in normalized_headers:
            if not normalized:
                continue
            for alias, key in alias_index:
                if key not in used_targets and alias == normalized:
                    suggestions[header] = key
                    used_targets.add(key)
                    break

        # Alias contained in the header, longest alias first
        by_length = sorted(alias_index, key=lambda item: len(item[0]), reverse=True)
        for header, normalized in normalized_headers:
            if not normalized or header in suggestions:
                continue
            for alias, key in by_length:
                if key not in used_targets and alias in normalized:
                    suggestions[header] = key
                    used_targets.add(key)
                    break

        return [
            MappingSuggestion(
                source_field=header,
                target_field=suggestions[header],
                label=self.catalog.label_for(suggestions[header]),
            )
            for header in headers
            if header in suggestions
        ]
