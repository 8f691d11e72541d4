"""Claim approval state machine.

A claim is submitted by its owner, optionally approved by an assigned
supervisor, approved by finance, given final approval by an executive and then
marked paid by finance. Any approval stage may reject the claim, which ends the
workflow.
"""
from datetime import datetime
from typing import Optional


class WorkflowError(Exception):
    pass


# stage -> (statuses it may act on, status after approval, document field)
STAGES = {
    "supervisor": ({"submitted"}, "approved", "supervisor_approval"),
    "finance": ({"submitted", "approved"}, "finance_approved", "finance_approval"),
    "executive": ({"finance_approved"}, "executive_approved", "executive_approval"),
}

TERMINAL_STATUSES = {"rejected", "paid"}


def allowed_actions(status: str) -> list[str]:
    """Workflow steps that can be taken from ``status``."""
    actions = [stage for stage, (sources, _, _) in STAGES.items() if status in sources]
    if status == "executive_approved":
        actions.append("mark_paid")
    return actions


def apply_decision(
    claim: dict,
    stage: str,
    action: str,
    actor_id,
    notes: Optional[str] = None,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict:
    """Return the ``$set`` update for an approve/reject decision at ``stage``."""
    if stage not in STAGES:
        raise WorkflowError(f"Unknown approval stage: {stage}")
    if action not in {"approve", "reject"}:
        raise WorkflowError("Action must be either 'approve' or 'reject'")
    sources, approved_status, field = STAGES[stage]
    current = claim.get("status")
    if current not in sources:
        raise WorkflowError(f"Cannot {action} a claim in status '{current}' at the {stage} stage")
    if action == "reject" and not (reason or notes):
        raise WorkflowError("A reason is required to reject a claim")

    now = now or datetime.utcnow()
    new_status = approved_status if action == "approve" else "rejected"
    return {
        "status": new_status,
        field: {
            "status": "approved" if action == "approve" else "rejected",
            "approved_by": actor_id,
            "approved_at": now,
            "notes": notes or "",
            "reason": (reason or notes or "") if action == "reject" else "",
        },
        "updated_at": now,
    }


def mark_paid(
    claim: dict,
    actor_id,
    channel: str,
    reference: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict:
    current = claim.get("status")
    if current != "executive_approved":
        raise WorkflowError(f"Only executive approved claims can be paid (status is '{current}')")
    if not channel:
        raise WorkflowError("Payment channel is required")
    now = now or datetime.utcnow()
    return {
        "status": "paid",
        "payment": {
            "paid_by": actor_id,
            "paid_at": now,
            "channel": channel,
            "reference": reference or "",
        },
        "updated_at": now,
    }
