"""
Mapping template schemas.

A template is an ordered list of field rules telling the importer which
file column feeds each target field and how to transform it. Processing
is a tagged union keyed on "function"; each variant carries only its own
parameters.
"""

import re
from collections import Counter
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from models.base import BaseSchema, TimestampMixin


# ===================
# PROCESSING PARAMS
# ===================

class ParamsSchema(BaseModel):
    """Processing parameters. Whitespace is significant (delimiters, search text)."""
    model_config = ConfigDict(extra="ignore", frozen=True)


class NoParams(ParamsSchema):
    pass


class LengthParams(ParamsSchema):
    length: int = Field(..., ge=0, description="Number of characters to keep")


class SubstringParams(ParamsSchema):
    start: int = Field(..., ge=0, description="0-based start position")
    length: int = Field(..., ge=0, description="Number of characters to take")


class DateFormatParams(ParamsSchema):
    format: Optional[str] = Field(
        None,
        description="Date format, e.g. DD.MM.YYYY HH:mm:ss; common formats are tried when empty"
    )

    @field_validator("format")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        return v if v and v.strip() else None


class SplitParams(ParamsSchema):
    delimiter: str = Field(..., min_length=1, description="Separator to split on")
    part: int = Field(..., ge=1, description="1-based part to keep")


class ReplaceParams(ParamsSchema):
    search: str = Field("", description="Literal text to find")
    replace: str = Field("", description="Replacement text")


class RegexpParams(ParamsSchema):
    pattern: str = Field(..., min_length=1, description="Regular expression")
    group: int = Field(0, ge=0, description="Capture group to return (0 = whole match)")

    @field_validator("pattern")
    @classmethod
    def pattern_compiles(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid regular expression: {e}") from e
        return v


# ===================
# PROCESSING VARIANTS
# ===================

class NoneProcessing(ParamsSchema):
    function: Literal["NONE"] = "NONE"
    params: NoParams = Field(default_factory=NoParams)


class LeftProcessing(ParamsSchema):
    function: Literal["LEFT"]
    params: LengthParams


class RightProcessing(ParamsSchema):
    function: Literal["RIGHT"]
    params: LengthParams


class SubstringProcessing(ParamsSchema):
    function: Literal["SUBSTRING"]
    params: SubstringParams


class ExtractDateProcessing(ParamsSchema):
    function: Literal["EXTRACT_DATE"]
    params: DateFormatParams = Field(default_factory=DateFormatParams)


class ExtractDateTimeProcessing(ParamsSchema):
    function: Literal["EXTRACT_DATETIME"]
    params: DateFormatParams = Field(default_factory=DateFormatParams)


class SplitProcessing(ParamsSchema):
    function: Literal["SPLIT"]
    params: SplitParams


class ReplaceProcessing(ParamsSchema):
    function: Literal["REPLACE"]
    params: ReplaceParams = Field(default_factory=ReplaceParams)


class RegexpProcessing(ParamsSchema):
    function: Literal["REGEXP"]
    params: RegexpParams


Processing = Annotated[
    Union[
        NoneProcessing,
        LeftProcessing,
        RightProcessing,
        SubstringProcessing,
        ExtractDateProcessing,
        ExtractDateTimeProcessing,
        SplitProcessing,
        ReplaceProcessing,
        RegexpProcessing,
    ],
    Field(discriminator="function"),
]


# ===================
# FIELD RULES
# ===================

class FieldRule(BaseSchema):
    """
    One mapping rule: source column -> target field.

    A rule without source_field but with default_value fills the target
    with the default on every row.
    """

    target_field: str = Field(..., min_length=1, description="Catalog key of the target field")
    source_field: Optional[str] = Field(None, description="File column header")
    processing: Processing = Field(default_factory=NoneProcessing)
    default_value: Optional[str] = Field(None, description="Used when the source cell is blank")

    @field_validator("source_field", "default_value", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if v is None:
            return None
        if not isinstance(v, str):
            v = str(v)
        return v if v.strip() else None

    @field_validator("processing", mode="before")
    @classmethod
    def default_processing(cls, v: Any) -> Any:
        if v is None:
            return {"function": "NONE"}
        if isinstance(v, dict):
            if "params" in v and v["params"] is None:
                v = {k: val for k, val in v.items() if k != "params"}
            if not v.get("function"):
                v = {**v, "function": "NONE"}
        return v

    @field_validator("source_field")
    @classmethod
    def collapse_whitespace(cls, v: Optional[str]) -> Optional[str]:
        return " ".join(v.split()) if v else v

    @property
    def function(self) -> str:
        return self.processing.function

    @property
    def is_bound(self) -> bool:
        """Rule contributes a value (from a column or a default)."""
        return bool(self.source_field) or self.default_value is not None


def find_duplicate_targets(rules: list[FieldRule]) -> list[str]:
    """Target fields bound by more than one rule, in first-seen order."""
    counts = Counter(rule.target_field for rule in rules)
    seen = []
    for rule in rules:
        if counts[rule.target_field] > 1 and rule.target_field not in seen:
            seen.append(rule.target_field)
    return seen


class RuleSet(BaseSchema):
    """Rules that must bind each target field at most once."""

    rules: list[FieldRule] = Field(..., min_length=1)

    @model_validator(mode="after")
    def one_rule_per_target(self):
        duplicates = find_duplicate_targets(self.rules)
        if duplicates:
            raise ValueError(
                f"Each target field may be mapped once; duplicated: {', '.join(duplicates)}"
            )
        return self


# ===================
# TEMPLATE SCHEMAS
# ===================

class MappingTemplateCreate(RuleSet):
    """
    Create a mapping template.

    Required: client_id, name, rules
    """

    client_id: str = Field(..., description="Owning tenant UUID")
    name: str = Field(..., min_length=1, max_length=200, description="Template name")
    description: Optional[str] = Field(None, max_length=1000)


class MappingTemplateUpdate(BaseSchema):
    """Update a mapping template. Changing rules bumps the version."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    rules: Optional[list[FieldRule]] = Field(None, min_length=1)

    @model_validator(mode="after")
    def one_rule_per_target(self):
        if self.rules:
            duplicates = find_duplicate_targets(self.rules)
            if duplicates:
                raise ValueError(
                    f"Each target field may be mapped once; duplicated: {', '.join(duplicates)}"
                )
        return self


class MappingTemplateResponse(BaseSchema, TimestampMixin):
    """Mapping template as stored."""

    id: str
    client_id: str
    name: str
    description: Optional[str] = None
    rules: list[FieldRule]
    version: int = 1
    sample_file_key: Optional[str] = None


class MappingTemplateListResponse(BaseSchema):
    data: list[MappingTemplateResponse]
    total: int


# ===================
# CATALOG + AUTHORING
# ===================

class TargetFieldInfo(BaseSchema):
    key: str
    label: str
    field_type: str
    allowed_processing: list[str]


class ProcessingFunctionDescription(BaseSchema):
    function: str
    label: str
    params: list[str]


class CatalogResponse(BaseSchema):
    fields: list[TargetFieldInfo]
    functions: list[ProcessingFunctionDescription]


class MappingSuggestion(BaseSchema):
    """Catalog field suggested for a file column."""
    source_field: str
    target_field: str
    label: str


class SampleUploadResponse(BaseSchema):
    """Parsed sample file returned while authoring a template."""
    template: MappingTemplateResponse
    fields: list[str]
    rows: list[dict[str, Any]]
    total_rows: int
    preview_rows: int
    suggestions: list[MappingSuggestion]
