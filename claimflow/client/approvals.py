from typing import Literal, Optional

from claimflow.client.api import ClaimFlowClient


MIN_REJECTION_REASON = 10

Stage = Literal["supervisor", "finance", "executive", "leave"]


class ApprovalFlow:
    """Two-step decision on one claim or leave: choose approve/reject, then confirm.

    ``confirm`` sends exactly one mutation for the chosen stage. A rejection
    needs a reason of at least ten characters and is refused before any
    request is made.
    """

    def __init__(self, client: ClaimFlowClient, stage: Stage, target_id: str):
        if stage not in {"supervisor", "finance", "executive", "leave"}:
            raise ValueError(f"Unknown approval stage: {stage}")
        self.client = client
        self.stage = stage
        self.target_id = target_id
        self.action: Optional[str] = None
        self.notes: Optional[str] = None
        self.reason: Optional[str] = None
        self.submitting = False
        self.result: Optional[dict] = None

    def choose(self, action: str) -> None:
        if action not in {"approve", "reject"}:
            raise ValueError("Action must be either 'approve' or 'reject'")
        self.action = action

    def back(self) -> None:
        self.action = None
        self.reason = None

    def validate(self) -> list[str]:
        errors = []
        if self.action is None:
            errors.append("Choose approve or reject first")
        elif self.action == "reject" and len((self.reason or "").strip()) < MIN_REJECTION_REASON:
            errors.append(f"Rejection reason must be at least {MIN_REJECTION_REASON} characters")
        return errors

    async def confirm(self, notes: Optional[str] = None, reason: Optional[str] = None) -> dict:
        if notes is not None:
            self.notes = notes
        if reason is not None:
            self.reason = reason
        errors = self.validate()
        if errors:
            raise ValueError(errors[0])
        if self.submitting:
            raise RuntimeError("A decision is already being submitted")
        self.submitting = True
        try:
            reason = self.reason if self.action == "reject" else None
            if self.stage == "leave":
                self.result = await self.client.decide_leave(self.target_id, self.action, self.notes, reason)
            elif self.stage == "supervisor":
                self.result = await self.client.approve_claim(self.target_id, self.action, self.notes, reason)
            elif self.stage == "finance":
                self.result = await self.client.finance_approve_claim(self.target_id, self.action, self.notes, reason)
            else:
                self.result = await self.client.executive_approve_claim(self.target_id, self.action, self.notes, reason)
        finally:
            self.submitting = False
        return self.result
