"""ORM models owned by the kernel."""

from fuel_kernel.models.asset_mapping import AssetMappingModel
from fuel_kernel.models.transaction import FuelTransactionModel

__all__ = ["AssetMappingModel", "FuelTransactionModel"]
