"""
Workflow stage definitions.

Each stage maps to a pending/submit endpoint pair on the dispatch API.
"""

from enum import Enum


class WorkflowStage(str, Enum):
    """Stages of the order-dispatch workflow, in processing order."""
    PRE_APPROVAL = "pre-approval"
    APPROVAL = "approval"
    DISPATCH_PLANNING = "dispatch-planning"
    ACTUAL_DISPATCH = "actual-dispatch"
    VEHICLE_DETAILS = "vehicle-details"
    MATERIAL_LOAD = "material-load"
    SECURITY_APPROVAL = "security-approval"
    MAKE_INVOICE = "make-invoice"
    CHECK_INVOICE = "check-invoice"
    GATE_OUT = "gate-out"

    @property
    def pending_path(self) -> str:
        return f"/{self.value}/pending"

    def submit_path(self, record_id: str) -> str:
        return f"/{self.value}/submit/{record_id}"
