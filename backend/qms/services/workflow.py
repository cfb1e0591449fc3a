"""
Таблицы допустимых переходов статусов workflow-сущностей.

Сама схема БД переходы не ограничивает, поэтому все изменения статуса
(PATCH .../status и PUT со статусом) проходят через check_transition.
Терминальные статусы не имеют исходящих переходов.
"""

from __future__ import annotations

from enum import Enum

from qms.core.errors import InvalidTransitionError
from qms.db.enums import (
    AuditStatus,
    CAPAStatus,
    ChangeControlStatus,
    DeviationStatus,
    DocumentStatus,
    TrainingStatus,
)

D = DocumentStatus
DV = DeviationStatus
C = CAPAStatus
CC = ChangeControlStatus
A = AuditStatus
T = TrainingStatus

TRANSITIONS: dict[str, dict[Enum, frozenset[Enum]]] = {
    "document": {
        D.DRAFT: frozenset({D.REVIEW, D.ARCHIVED}),
        D.REVIEW: frozenset({D.DRAFT, D.APPROVED, D.ARCHIVED}),
        D.APPROVED: frozenset({D.ARCHIVED}),
        D.ARCHIVED: frozenset(),
    },
    "deviation": {
        DV.OPEN: frozenset({DV.INVESTIGATION, DV.REJECTED}),
        DV.INVESTIGATION: frozenset(
            {DV.CAPA_REQUIRED, DV.PENDING_CLOSURE, DV.CLOSED, DV.REJECTED}
        ),
        DV.CAPA_REQUIRED: frozenset({DV.CAPA_IN_PROGRESS, DV.REJECTED}),
        DV.CAPA_IN_PROGRESS: frozenset({DV.PENDING_CLOSURE}),
        DV.PENDING_CLOSURE: frozenset({DV.CLOSED, DV.CAPA_IN_PROGRESS}),
        DV.CLOSED: frozenset(),
        DV.REJECTED: frozenset(),
    },
    "capa": {
        C.OPEN: frozenset({C.INVESTIGATION, C.CANCELLED}),
        C.INVESTIGATION: frozenset({C.ACTION_PLAN, C.CANCELLED}),
        C.ACTION_PLAN: frozenset({C.IMPLEMENTATION, C.CANCELLED}),
        C.IMPLEMENTATION: frozenset({C.EFFECTIVENESS_CHECK, C.CANCELLED}),
        C.EFFECTIVENESS_CHECK: frozenset({C.COMPLETED, C.IMPLEMENTATION, C.CANCELLED}),
        C.COMPLETED: frozenset(),
        C.CANCELLED: frozenset(),
    },
    "change_control": {
        CC.INITIATED: frozenset({CC.ASSESSMENT, CC.CANCELLED}),
        CC.ASSESSMENT: frozenset({CC.APPROVAL_PENDING, CC.CANCELLED}),
        CC.APPROVAL_PENDING: frozenset({CC.APPROVED, CC.REJECTED, CC.ASSESSMENT}),
        CC.APPROVED: frozenset({CC.IMPLEMENTATION, CC.CANCELLED}),
        CC.IMPLEMENTATION: frozenset({CC.VERIFICATION}),
        CC.VERIFICATION: frozenset({CC.COMPLETED, CC.IMPLEMENTATION}),
        CC.COMPLETED: frozenset(),
        CC.REJECTED: frozenset(),
        CC.CANCELLED: frozenset(),
    },
    "audit": {
        A.PLANNED: frozenset({A.IN_PROGRESS}),
        A.IN_PROGRESS: frozenset({A.REPORT_DRAFT}),
        A.REPORT_DRAFT: frozenset({A.REPORT_REVIEW}),
        A.REPORT_REVIEW: frozenset({A.REPORT_DRAFT, A.COMPLETED}),
        A.COMPLETED: frozenset({A.CLOSED}),
        A.CLOSED: frozenset(),
    },
    "training": {
        T.DRAFT: frozenset({T.PUBLISHED, T.SCHEDULED, T.CANCELLED}),
        T.PUBLISHED: frozenset({T.SCHEDULED, T.IN_PROGRESS, T.CANCELLED}),
        T.SCHEDULED: frozenset({T.IN_PROGRESS, T.OVERDUE, T.CANCELLED}),
        T.IN_PROGRESS: frozenset({T.COMPLETED, T.OVERDUE, T.CANCELLED}),
        T.OVERDUE: frozenset({T.IN_PROGRESS, T.COMPLETED, T.CANCELLED}),
        T.COMPLETED: frozenset(),
        T.CANCELLED: frozenset(),
    },
}


def allowed_transitions(entity: str, current: Enum) -> list[str]:
    """Список статусов, в которые можно перейти из current (отсортирован)."""
    return sorted(s.value for s in TRANSITIONS[entity].get(current, frozenset()))


def can_transition(entity: str, current: Enum, target: Enum) -> bool:
    if current == target:
        return True
    return target in TRANSITIONS[entity].get(current, frozenset())


def check_transition(entity: str, current: Enum, target: Enum) -> bool:
    """
    Проверяет переход current -> target.

    Returns:
        False, если статус не меняется (no-op), True для допустимой смены.

    Raises:
        InvalidTransitionError: если переход не разрешён таблицей
    """
    if current == target:
        return False
    if not can_transition(entity, current, target):
        raise InvalidTransitionError(
            entity=entity,
            current=current.value,
            target=target.value,
            allowed=allowed_transitions(entity, current),
        )
    return True
