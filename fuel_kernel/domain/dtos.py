"""
DTOs -- diagnostics that flow out of the reconciliation pipeline.

Responsibility:
    ``BatchDiagnostic`` is the single record type for everything a reviewer
    needs to look at: parse failures, unclassified rows, pending mappings,
    meter warnings, reconciliation gaps. Each one keeps the original row
    number and/or transaction id so it can be traced back to the legacy
    source.

Architecture position:
    Kernel > Domain -- pure, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import UUID


class DiagnosticSeverity(str, Enum):
    """How much attention a diagnostic needs."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class BatchDiagnostic:
    """
    A single reviewer-facing finding.

    Contract:
        Carries a machine-readable code, a message, the severity and at least
        one provenance pointer (row number or transaction id) when one exists.

    Non-goals:
        - Does NOT raise -- it IS the error representation inside a batch.
    """

    code: str
    message: str
    severity: DiagnosticSeverity
    row_number: int | None = None
    transaction_id: UUID | None = None
    reason: str | None = None
    details: dict[str, Any] | None = None

    @classmethod
    def from_error(
        cls,
        error: Exception,
        severity: DiagnosticSeverity = DiagnosticSeverity.ERROR,
        transaction_id: UUID | None = None,
        details: dict[str, Any] | None = None,
    ) -> BatchDiagnostic:
        """Build a diagnostic from a typed kernel exception."""
        return cls(
            code=getattr(error, "code", type(error).__name__),
            message=str(error),
            severity=severity,
            row_number=getattr(error, "row_number", None),
            transaction_id=transaction_id,
            reason=getattr(error, "reason", None),
            details=details,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value,
            "row_number": self.row_number,
            "transaction_id": str(self.transaction_id) if self.transaction_id else None,
            "reason": self.reason,
            "details": self.details,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BatchDiagnostic:
        tx_id = data.get("transaction_id")
        return cls(
            code=data["code"],
            message=data["message"],
            severity=DiagnosticSeverity(data["severity"]),
            row_number=data.get("row_number"),
            transaction_id=UUID(tx_id) if tx_id else None,
            reason=data.get("reason"),
            details=data.get("details"),
        )
