"""
Target field catalog for order imports.

The fixed schema every imported row is normalized into. Each target
field declares its value type and the processing functions a mapping
rule may apply to it. The catalog is built once and handed to the rule
engine and template validator; nothing mutates it at runtime.
"""

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from types import MappingProxyType
from typing import Mapping


class ProcessingFunction(str, Enum):
    """Transformation functions a field rule can apply."""
    NONE = "NONE"
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    SUBSTRING = "SUBSTRING"
    EXTRACT_DATE = "EXTRACT_DATE"
    EXTRACT_DATETIME = "EXTRACT_DATETIME"
    SPLIT = "SPLIT"
    REPLACE = "REPLACE"
    REGEXP = "REGEXP"


class FieldType(str, Enum):
    """Value type of a target field in the orders table."""
    STRING = "STRING"
    INTEGER = "INTEGER"
    FLOAT = "FLOAT"
    DATE = "DATE"
    DATETIME = "DATETIME"


@dataclass(frozen=True)
class TargetField:
    """One slot of the orders schema."""
    key: str
    label: str
    field_type: FieldType
    allowed_processing: frozenset[ProcessingFunction]
    aliases: tuple[str, ...] = ()

    def allows(self, function: ProcessingFunction) -> bool:
        return function in self.allowed_processing


@dataclass(frozen=True)
class ProcessingFunctionInfo:
    """Editor-facing description of a processing function."""
    function: ProcessingFunction
    label: str
    params: tuple[str, ...]


@dataclass(frozen=True)
class FieldCatalog:
    """Read-only lookup over target fields and processing functions."""
    fields: Mapping[str, TargetField]
    functions: Mapping[ProcessingFunction, ProcessingFunctionInfo]

    def get(self, key: str) -> TargetField | None:
        return self.fields.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self.fields

    def label_for(self, key: str) -> str:
        field = self.fields.get(key)
        return field.label if field else key


# =============================================================================
# PROCESSING SETS
# =============================================================================

_F = ProcessingFunction

TEXT_ONLY = frozenset({_F.NONE, _F.REPLACE})
DATE_FUNCTIONS = frozenset({
    _F.NONE, _F.EXTRACT_DATE, _F.EXTRACT_DATETIME, _F.RIGHT, _F.SUBSTRING, _F.REGEXP,
})
NUMERIC_FUNCTIONS = frozenset({_F.NONE, _F.REGEXP})
IDENTIFIER_FUNCTIONS = frozenset({_F.NONE, _F.RIGHT, _F.LEFT, _F.SUBSTRING, _F.REGEXP})


# =============================================================================
# TARGET FIELDS
# =============================================================================

_TARGET_FIELDS: tuple[TargetField, ...] = (
    TargetField(
        "order_number", "Order number", FieldType.STRING,
        IDENTIFIER_FUNCTIONS | {_F.SPLIT},
        ("номер заказа", "заказ", "order", "order no", "order id"),
    ),
    TargetField(
        "order_date", "Order date", FieldType.DATETIME, DATE_FUNCTIONS,
        ("дата заказа", "дата", "order date", "date"),
    ),
    TargetField(
        "delivery_date", "Delivery date", FieldType.DATETIME, DATE_FUNCTIONS,
        ("дата доставки", "дата выдачи", "delivery date"),
    ),
    TargetField(
        "category", "Category", FieldType.STRING, TEXT_ONLY,
        ("категория", "category", "группа"),
    ),
    TargetField(
        "brand", "Brand", FieldType.STRING, TEXT_ONLY,
        ("бренд", "марка", "производитель", "brand"),
    ),
    TargetField(
        "article_number", "Article number", FieldType.STRING,
        frozenset({_F.NONE, _F.REPLACE, _F.REGEXP}),
        ("артикул", "article", "sku"),
    ),
    TargetField(
        "product", "Product", FieldType.STRING, TEXT_ONLY,
        ("товар", "номенклатура", "наименование", "product"),
    ),
    TargetField(
        "quantity", "Quantity", FieldType.INTEGER, NUMERIC_FUNCTIONS,
        ("количество", "кол-во", "quantity", "qty"),
    ),
    TargetField(
        "revenue", "Revenue", FieldType.FLOAT, NUMERIC_FUNCTIONS,
        ("выручка", "сумма", "revenue", "amount"),
    ),
    TargetField(
        "cost_price", "Cost price", FieldType.FLOAT, NUMERIC_FUNCTIONS,
        ("себестоимость", "cost", "cost price"),
    ),
    TargetField(
        "customer_id", "Customer ID", FieldType.STRING, IDENTIFIER_FUNCTIONS,
        ("код клиента", "клиент", "customer", "customer id"),
    ),
    TargetField(
        "name", "First name", FieldType.STRING, frozenset({_F.NONE, _F.SPLIT, _F.REPLACE}),
        ("имя", "name", "first name"),
    ),
    TargetField(
        "last_name", "Last name", FieldType.STRING, frozenset({_F.NONE, _F.SPLIT, _F.REPLACE}),
        ("фамилия", "last name", "surname"),
    ),
    TargetField(
        "birthday", "Birthday", FieldType.DATE,
        frozenset({_F.NONE, _F.EXTRACT_DATE, _F.EXTRACT_DATETIME, _F.REGEXP}),
        ("дата рождения", "день рождения", "birthday"),
    ),
    TargetField(
        "telephone", "Telephone", FieldType.STRING, frozenset({_F.NONE, _F.REGEXP, _F.REPLACE}),
        ("телефон", "phone", "telephone"),
    ),
    TargetField(
        "city", "City", FieldType.STRING, TEXT_ONLY,
        ("город", "city"),
    ),
    TargetField(
        "subdivision", "Subdivision", FieldType.STRING, TEXT_ONLY,
        ("подразделение", "филиал", "subdivision"),
    ),
    TargetField(
        "pick_up_point", "Pick-up point", FieldType.STRING, TEXT_ONLY,
        ("пункт выдачи", "пвз", "pick-up point"),
    ),
    TargetField(
        "car_brand", "Car brand", FieldType.STRING, TEXT_ONLY,
        ("марка авто", "марка автомобиля", "car brand"),
    ),
    TargetField(
        "car_model", "Car model", FieldType.STRING, TEXT_ONLY,
        ("модель авто", "модель автомобиля", "car model"),
    ),
    TargetField(
        "entry_date", "Entry date", FieldType.DATETIME, DATE_FUNCTIONS,
        ("дата внесения", "entry date"),
    ),
    TargetField(
        "entry_user", "Entered by", FieldType.STRING, TEXT_ONLY,
        ("внес", "пользователь", "entry user"),
    ),
)

_PROCESSING_FUNCTIONS: tuple[ProcessingFunctionInfo, ...] = (
    ProcessingFunctionInfo(_F.NONE, "No processing", ()),
    ProcessingFunctionInfo(_F.LEFT, "First N characters", ("length",)),
    ProcessingFunctionInfo(_F.RIGHT, "Last N characters", ("length",)),
    ProcessingFunctionInfo(_F.SUBSTRING, "Substring", ("start", "length")),
    ProcessingFunctionInfo(_F.EXTRACT_DATE, "Extract date", ("format",)),
    ProcessingFunctionInfo(_F.EXTRACT_DATETIME, "Extract date and time", ("format",)),
    ProcessingFunctionInfo(_F.SPLIT, "Split and take part", ("delimiter", "part")),
    ProcessingFunctionInfo(_F.REPLACE, "Replace text", ("search", "replace")),
    ProcessingFunctionInfo(_F.REGEXP, "Regular expression", ("pattern", "group")),
)


def build_field_catalog(
    fields: tuple[TargetField, ...] = _TARGET_FIELDS,
    functions: tuple[ProcessingFunctionInfo, ...] = _PROCESSING_FUNCTIONS,
) -> FieldCatalog:
    """Build an immutable catalog from field and function definitions."""
    return FieldCatalog(
        fields=MappingProxyType({f.key: f for f in fields}),
        functions=MappingProxyType({f.function: f for f in functions}),
    )


@lru_cache()
def get_field_catalog() -> FieldCatalog:
    """Process-wide catalog, built on first use."""
    return build_field_catalog()
