"""Escalation resolver: who hears about a project, in which order.

The chain is Sub-PMO (project department) -> Main-PMO (all) -> Department
Director (project department) -> Executive (all). The result is a plain
concatenation of the four role filters and is not deduplicated, so a
directory listing one person under two qualifying entries yields that
person twice.
"""

from collections.abc import Iterable

from ..models import Actor, ApprovalStage, UserRole


def _in_department(actor: Actor, department_id: str | None) -> bool:
    return department_id is not None and actor.department_id == department_id


def _filter(
    actors: Iterable[Actor],
    role: UserRole,
    department_id: str | None = None,
    scoped: bool = False,
) -> list[Actor]:
    return [
        a for a in actors
        if a.role == role and (not scoped or _in_department(a, department_id))
    ]


class EscalationResolver:
    """Resolves stakeholder sets against a user directory snapshot."""

    def resolve_chain(self, department_id: str | None, all_actors: Iterable[Actor]) -> list[Actor]:
        actors = list(all_actors)
        return (
            _filter(actors, UserRole.SUB_PMO, department_id, scoped=True)
            + _filter(actors, UserRole.MAIN_PMO)
            + _filter(actors, UserRole.DEPARTMENT_DIRECTOR, department_id, scoped=True)
            + _filter(actors, UserRole.EXECUTIVE)
        )

    def resolve_deadline_stakeholders(self, department_id: str | None, all_actors: Iterable[Actor]) -> list[Actor]:
        """The chain without executives."""
        return [a for a in self.resolve_chain(department_id, all_actors) if a.role != UserRole.EXECUTIVE]

    def resolve_approvers(
        self,
        stage: ApprovalStage | None,
        department_id: str | None,
        all_actors: Iterable[Actor],
    ) -> list[Actor]:
        """Reviewers whose queue an item enters at ``stage``."""
        actors = list(all_actors)
        if stage == ApprovalStage.PENDING_SUB_PMO:
            return _filter(actors, UserRole.SUB_PMO, department_id, scoped=True)
        if stage in (ApprovalStage.APPROVED_BY_SUB_PMO, ApprovalStage.PENDING_MAIN_PMO):
            return _filter(actors, UserRole.MAIN_PMO)
        return []


escalation_resolver = EscalationResolver()


def resolve_chain(project, all_actors: Iterable[Actor]) -> list[Actor]:
    """Escalation chain for ``project``'s department."""
    return escalation_resolver.resolve_chain(project.department_id, all_actors)
