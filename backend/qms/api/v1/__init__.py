from fastapi import APIRouter

from qms.api.v1 import (
    assignments,
    audits,
    auth,
    capas,
    certificates,
    change_controls,
    deviations,
    documents,
    exams,
    notifications,
    reports,
    tenants,
    trainings,
    users,
)

router = APIRouter()

router.include_router(auth.router, tags=["auth"])
router.include_router(users.router, tags=["users"])
router.include_router(tenants.router, tags=["tenants"])
router.include_router(documents.router, tags=["documents"])
router.include_router(deviations.router, tags=["deviations"])
router.include_router(capas.router, tags=["capas"])
router.include_router(change_controls.router, tags=["change-controls"])
router.include_router(audits.router, tags=["audits"])
router.include_router(trainings.router, tags=["trainings"])
router.include_router(assignments.router, tags=["training-assignments"])
router.include_router(exams.router, tags=["exams"])
router.include_router(certificates.router, tags=["certificates"])
router.include_router(notifications.router, tags=["notifications"])
router.include_router(reports.router, tags=["reports"])
