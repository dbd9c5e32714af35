"""
Business logic services.

Each service handles one part of the import pipeline.
"""

from services.rule_engine import RuleEngine, RowOutcome, RowTransformError, apply_processing
from services.template_validator import TemplateValidator
from services.storage_service import StorageService, get_storage_service
from services.order_service import OrderService, InsertResult
from services.mapping_template_service import MappingTemplateService, get_mapping_template_service
from services.import_session_service import ImportSessionService, get_import_session_service

__all__ = [
    "RuleEngine",
    "RowOutcome",
    "RowTransformError",
    "apply_processing",
    "TemplateValidator",
    "StorageService",
    "get_storage_service",
    "OrderService",
    "InsertResult",
    "MappingTemplateService",
    "get_mapping_template_service",
    "ImportSessionService",
    "get_import_session_service",
]
