"""
Valuation - FIFO cost lots for fuel leaving a warehouse.

Pure functions only. Movement selection happens in
fuel_services.transfer_service.
"""

from fuel_engines.valuation.fifo import (
    CostMethod,
    FifoCostResult,
    FuelCostLot,
    build_lots,
    fifo_unit_cost,
    weighted_average_cost,
)

__all__ = [
    "CostMethod",
    "FifoCostResult",
    "FuelCostLot",
    "build_lots",
    "fifo_unit_cost",
    "weighted_average_cost",
]
