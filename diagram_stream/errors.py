"""Error taxonomy shared by the assembly, patch and validation engines."""
from __future__ import annotations

from typing import Any, List, Optional


class DiagramEngineError(ValueError):
    """Base class for every structured engine failure.

    ``code`` is the machine-readable name relayed back to the generator.
    """

    code = "DiagramEngineError"

    def __init__(self, message: str, *, cell_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.cell_id = cell_id

    def to_dict(self) -> dict:
        payload = {"code": self.code, "message": self.message}
        if self.cell_id is not None:
            payload["cell_id"] = self.cell_id
        return payload


class MalformedFragment(DiagramEngineError):
    code = "MalformedFragment"


class FreshStartRejected(DiagramEngineError):
    code = "FreshStartRejected"


class AssemblyAbandoned(DiagramEngineError):
    code = "AssemblyAbandoned"


class UnknownContinuation(DiagramEngineError):
    code = "UnknownContinuation"


class DuplicateId(DiagramEngineError):
    code = "DuplicateId"


class UnknownCell(DiagramEngineError):
    code = "UnknownCell"


class InvalidParentReference(DiagramEngineError):
    code = "InvalidParentReference"


class InvalidEdgeEndpoint(DiagramEngineError):
    code = "InvalidEdgeEndpoint"


class UnresolvedReference(DiagramEngineError):
    code = "UnresolvedReference"


class InvalidOperationBatch(DiagramEngineError):
    code = "InvalidOperationBatch"


class StructuralValidationFailed(DiagramEngineError):
    """Raised when a wrapped document breaks a structural invariant."""

    code = "StructuralValidationFailed"

    def __init__(self, violations: List[Any]):
        lines = [str(v) for v in violations]
        super().__init__("; ".join(lines) if lines else "Structural validation failed")
        self.violations = list(violations)

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["violations"] = [
            v.to_dict() if hasattr(v, "to_dict") else str(v) for v in self.violations
        ]
        return payload
