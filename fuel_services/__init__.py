"""
Services -- the imperative shell.

Every service takes a SQLAlchemy ``Session`` and an actor id, calls the
pure engines, and owns its transaction boundary (``auto_commit``).
"""

from fuel_services.asset_mapping_service import AssetMappingService, MappingResolution
from fuel_services.batch_import_service import (
    BatchImportService,
    ImportContext,
    ImportPreview,
    ProcessResult,
    run_pipeline,
)
from fuel_services.orm import PlantBatchModel
from fuel_services.transfer_service import TransferLinkResult, TransferService

__all__ = [
    "AssetMappingService",
    "BatchImportService",
    "ImportContext",
    "ImportPreview",
    "MappingResolution",
    "PlantBatchModel",
    "ProcessResult",
    "TransferLinkResult",
    "TransferService",
    "run_pipeline",
]
