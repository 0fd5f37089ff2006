"""
Principal + capability resolution.

Every authorization decision in the workflow is answered here, from one
place, so the review pipeline, the implementation tracker, scoring and the
authoring service never compare role codes themselves.

Usage:
    caps = capabilities_of(principal)
    if not caps.can_review_first(suggestion.team):
        raise ForbiddenError(...)
"""

from __future__ import annotations

from dataclasses import dataclass

from suggestion_hub.models.suggestion import ROLES, SAFETY_TYPE

TEAM_MEMBER = "TEAM_MEMBER"
SHIFT_SUPERVISOR = "SHIFT_SUPERVISOR"
SAFETY_ADMIN = "SAFETY_ADMIN"
OPERATIONS_ADMIN = "OPERATIONS_ADMIN"
DEPARTMENT_MANAGER = "DEPARTMENT_MANAGER"

ADMIN_ROLES = frozenset({SAFETY_ADMIN, OPERATIONS_ADMIN, DEPARTMENT_MANAGER})
NON_SUBMITTING_ROLES = frozenset({SAFETY_ADMIN, OPERATIONS_ADMIN})


@dataclass(frozen=True)
class Principal:
    """Authenticated user as yielded by the identity provider."""

    id: str
    role: str
    team: str | None = None
    name: str = ""


def second_stage_role_for(suggestion_type: str) -> str:
    """Admin role that owns the second review stage for a suggestion type."""
    return SAFETY_ADMIN if suggestion_type == SAFETY_TYPE else OPERATIONS_ADMIN


@dataclass(frozen=True)
class Capabilities:
    principal: Principal

    @property
    def role(self) -> str:
        return self.principal.role

    # ── Review ───────────────────────────────────────────────────────────

    def can_review_first(self, team: str | None) -> bool:
        if self.role == DEPARTMENT_MANAGER:
            return True
        return self.role == SHIFT_SUPERVISOR and bool(team) and self.principal.team == team

    def can_review_second(self, suggestion_type: str) -> bool:
        if self.role == DEPARTMENT_MANAGER:
            return True
        if self.role == SAFETY_ADMIN:
            return suggestion_type == SAFETY_TYPE
        if self.role == OPERATIONS_ADMIN:
            return suggestion_type != SAFETY_TYPE
        return False

    # ── Implementation / scoring ─────────────────────────────────────────

    def is_responsible_for(self, implementation: dict | None) -> bool:
        responsible = (implementation or {}).get("responsiblePerson")
        if not responsible:
            return False
        return responsible in {self.principal.id, self.principal.name}

    def can_implement(self, suggestion) -> bool:
        if self.role in ADMIN_ROLES:
            return True
        return self.is_responsible_for(suggestion.implementation)

    def can_score(self) -> bool:
        return self.role == DEPARTMENT_MANAGER

    # ── Authoring ────────────────────────────────────────────────────────

    def can_submit(self) -> bool:
        return self.role in ROLES and self.role not in NON_SUBMITTING_ROLES

    def is_submitter(self, suggestion) -> bool:
        return suggestion.submitter_id == self.principal.id

    def can_edit(self, suggestion) -> bool:
        return self.is_submitter(suggestion)

    def can_delete(self, suggestion) -> bool:
        if self.role == DEPARTMENT_MANAGER:
            return True
        if not self.is_submitter(suggestion):
            return False
        status = suggestion.implementation_status
        return status is None or status == "NOT_STARTED"

    def can_manage_attachments(self, suggestion) -> bool:
        return self.role in ADMIN_ROLES or self.is_submitter(suggestion)

    # ── Queries ──────────────────────────────────────────────────────────

    def visibility_filter(self) -> dict:
        """Implicit query filters limiting what a principal may list."""
        if self.role == TEAM_MEMBER:
            return {"submitter": {self.principal.id}}
        if self.role == SHIFT_SUPERVISOR:
            return {"team": {self.principal.team}} if self.principal.team else {"team": set()}
        return {}

    def pending_review_filter(self) -> dict | None:
        """Filters for the review queue a principal can act on; None means empty."""
        if self.role == SHIFT_SUPERVISOR:
            if not self.principal.team:
                return None
            return {"reviewStatus": {"PENDING_FIRST_REVIEW"}, "team": {self.principal.team}}
        if self.role == SAFETY_ADMIN:
            return {"reviewStatus": {"PENDING_SECOND_REVIEW"}, "type": {SAFETY_TYPE}}
        if self.role == OPERATIONS_ADMIN:
            return {"reviewStatus": {"PENDING_SECOND_REVIEW"}, "excludeType": {SAFETY_TYPE}}
        if self.role == DEPARTMENT_MANAGER:
            return {"reviewStatus": {"PENDING_FIRST_REVIEW", "PENDING_SECOND_REVIEW"}}
        return None


def capabilities_of(principal: Principal) -> Capabilities:
    return Capabilities(principal)
