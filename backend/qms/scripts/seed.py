"""
Скрипт для заполнения БД демонстрационными данными:
- тенант "demo" и пользователи для каждой роли
- документы, отклонения, CAPA, change control, аудиты
- тренинг с материалами и экзаменом, назначенный стажёру

Запуск: python -m qms.scripts.seed [--reset]
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import timedelta

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from qms.core.logging import get_logger
from qms.core.security import RequestContext
from qms.db.base import utcnow
from qms.db.enums import (
    AuditType,
    CAPAType,
    ContentType,
    DeviationSeverity,
    DeviationStatus,
    DocumentStatus,
    DocumentType,
    Priority,
    RiskLevel,
    TrainingCategory,
    TrainingStatus,
    TrainingType,
    UserRole,
)
from qms.db.models import (
    CAPA,
    Audit,
    AuditLog,
    Certificate,
    ChangeControl,
    Deviation,
    Document,
    Exam,
    ExamAttempt,
    Notification,
    Tenant,
    Training,
    TrainingAssignment,
    TrainingContent,
    User,
)
from qms.db.session import async_session_factory, engine
from qms.services import (
    AssignmentService,
    AuditService,
    AuthService,
    CAPAService,
    ChangeControlService,
    DeviationService,
    DocumentService,
    ExamAdminService,
    TenantService,
    TrainingContentService,
    TrainingService,
    UserService,
)

log = get_logger("seed")

DEMO_SUBDOMAIN = "demo"
DEMO_PASSWORD = "Demo1234!"

DEMO_USERS = [
    ("admin@demo.local", "Anna", "Admin", UserRole.ADMIN, "Management"),
    ("qa@demo.local", "Quentin", "Quality", UserRole.QA_MANAGER, "Quality Assurance"),
    ("pharmacist@demo.local", "Paula", "Pharmacist", UserRole.PHARMACIST, "Dispensary"),
    ("tech@demo.local", "Tom", "Technician", UserRole.TECHNICIAN, "Compounding"),
    ("trainee@demo.local", "Tina", "Trainee", UserRole.TRAINEE, "Dispensary"),
]

# Порядок удаления: сначала зависимые таблицы (на SQLite каскад FK выключен)
TENANT_TABLES = (
    Notification,
    Certificate,
    ExamAttempt,
    TrainingAssignment,
    Exam,
    TrainingContent,
    Training,
    Deviation,
    CAPA,
    ChangeControl,
    Audit,
    Document,
    AuditLog,
    User,
)


async def purge_tenant(db: AsyncSession, tenant: Tenant) -> None:
    """Удаляет все данные тенанта и сам тенант."""
    for model in TENANT_TABLES:
        await db.execute(delete(model).where(model.tenant_id == tenant.id))
    await db.delete(tenant)
    await db.commit()
    log.info(f"Tenant '{tenant.subdomain}' purged")


async def seed_users(db: AsyncSession, tenant: Tenant) -> dict[UserRole, User]:
    users: dict[UserRole, User] = {}
    service = UserService(db)
    for email, first_name, last_name, role, department in DEMO_USERS:
        users[role] = await service.create_in_tenant(
            tenant.id,
            {
                "email": email,
                "password": DEMO_PASSWORD,
                "first_name": first_name,
                "last_name": last_name,
                "role": role,
                "department": department,
                # В демо письма не отправляем
                "email_notifications": False,
            },
        )
    return users


async def seed_quality(db: AsyncSession, ctx: RequestContext, users: dict[UserRole, User]) -> None:
    today = utcnow().date()

    documents = DocumentService(db)
    sop = await documents.create(
        ctx,
        {
            "title": "Dispensing of Controlled Drugs",
            "description": "Procedure for receipt, storage and dispensing of controlled drugs",
            "document_type": DocumentType.SOP,
            "content": "1. Purpose\n2. Scope\n3. Responsibilities\n4. Procedure",
            "effective_date": today,
            "review_date": today + timedelta(days=365),
            "tags": ["controlled-drugs", "dispensing"],
        },
    )
    await documents.change_status(ctx, sop.id, DocumentStatus.REVIEW, comment="Ready for review")
    await documents.change_status(ctx, sop.id, DocumentStatus.APPROVED, comment="Approved by QA")
    await documents.create(
        ctx,
        {
            "title": "Cold Chain Temperature Log",
            "document_type": DocumentType.FORM,
            "tags": ["cold-chain"],
        },
    )

    deviations = DeviationService(db)
    fridge = await deviations.create(
        ctx,
        {
            "title": "Vaccine fridge temperature excursion",
            "description": "Fridge 2 recorded 11.2 °C for 40 minutes overnight",
            "severity": DeviationSeverity.MAJOR,
            "category": "Storage",
            "occurrence_date": today - timedelta(days=3),
            "assigned_to": users[UserRole.QA_MANAGER].id,
            "department": "Dispensary",
            "product_affected": "Influenza vaccine",
            "batch_number": "FLU-24-118",
            "immediate_action": "Stock quarantined, manufacturer contacted",
        },
    )
    await deviations.change_status(
        ctx,
        fridge.id,
        DeviationStatus.INVESTIGATION,
        extra={"investigation": "Door seal found damaged"},
    )
    await deviations.change_status(
        ctx,
        fridge.id,
        DeviationStatus.CAPA_REQUIRED,
        extra={"root_cause": "Worn door seal, no seal inspection in maintenance plan"},
    )
    await deviations.create_capa(
        ctx,
        fridge.id,
        {"type": CAPAType.BOTH, "priority": Priority.HIGH, "due_date": today + timedelta(days=30)},
    )
    await deviations.create(
        ctx,
        {
            "title": "Dispensing label error",
            "description": "Wrong strength printed on label, caught at final check",
            "severity": DeviationSeverity.MINOR,
            "category": "Dispensing",
            "occurrence_date": today - timedelta(days=1),
            "department": "Dispensary",
        },
    )

    await CAPAService(db).create(
        ctx,
        {
            "title": "Introduce second-person check for compounding",
            "description": "Independent verification of compounding calculations",
            "type": CAPAType.PREVENTIVE,
            "source": "Audit",
            "priority": Priority.MEDIUM,
            "assigned_to": users[UserRole.PHARMACIST].id,
            "due_date": today + timedelta(days=60),
        },
    )

    await ChangeControlService(db).create(
        ctx,
        {
            "title": "Replace dispensing software",
            "description": "Migration to the new pharmacy management system",
            "change_type": "System",
            "priority": Priority.HIGH,
            "risk_level": RiskLevel.HIGH,
            "implementation_date": today + timedelta(days=90),
            "affected_systems": ["dispensing", "inventory"],
        },
    )

    await AuditService(db).create(
        ctx,
        {
            "title": "Annual GPP self-inspection",
            "audit_type": AuditType.SELF_INSPECTION,
            "scope": "Storage, dispensing and documentation",
            "standard": "Good Pharmacy Practice",
            "priority": Priority.MEDIUM,
            "scheduled_date": today + timedelta(days=14),
            "lead_auditor": users[UserRole.QA_MANAGER].id,
        },
    )


async def seed_training(db: AsyncSession, ctx: RequestContext, users: dict[UserRole, User]) -> None:
    today = utcnow().date()
    trainings = TrainingService(db)
    training = await trainings.create(
        ctx,
        {
            "title": "Cold Chain Management",
            "description": "Handling of temperature-sensitive medicines",
            "training_type": TrainingType.INITIAL,
            "category": TrainingCategory.GMP,
            "due_date": today + timedelta(days=21),
            "duration": 45,
            "trainer": "Quentin Quality",
            "target_roles": [UserRole.PHARMACIST.value, UserRole.TECHNICIAN.value, UserRole.TRAINEE.value],
            "certificate_template": {"title": "Certificate of Completion", "signature_name": "Quentin Quality"},
        },
    )

    contents = TrainingContentService(db)
    await contents.add(
        ctx,
        training.id,
        {
            "title": "Why the cold chain matters",
            "content_type": ContentType.VIDEO,
            "content_url": "https://videos.example.com/cold-chain-intro.mp4",
            "duration": 5,
        },
    )
    await contents.add(
        ctx,
        training.id,
        {
            "title": "Fridge monitoring procedure",
            "content_type": ContentType.PPT,
            "slides": [
                {"slide_number": 1, "title": "Daily checks"},
                {"slide_number": 2, "title": "Min/max thermometers"},
                {"slide_number": 3, "title": "Excursion handling"},
            ],
        },
    )

    await ExamAdminService(db).create(
        ctx,
        training.id,
        {
            "title": "Cold Chain Assessment",
            "passing_score": 80,
            "max_attempts": 3,
            "time_limit": 15,
            "questions": [
                {
                    "question_text": "What is the storage range for refrigerated medicines?",
                    "question_type": "multiple_choice",
                    "options": ["0-4 °C", "2-8 °C", "8-15 °C"],
                    "correct_answers": [1],
                },
                {
                    "question_text": "An excursion must be documented as a deviation.",
                    "question_type": "true_false",
                    "options": ["True", "False"],
                    "correct_answers": [0],
                },
                {
                    "question_text": "Which records belong to the fridge log?",
                    "question_type": "multiple_select",
                    "options": ["Current temperature", "Min/max", "Patient name"],
                    "correct_answers": [0, 1],
                    "points": 2,
                },
            ],
        },
    )

    await trainings.change_status(ctx, training.id, TrainingStatus.PUBLISHED, comment="Published for staff")
    await AssignmentService(db).assign(
        ctx,
        training.id,
        user_ids=[users[UserRole.TRAINEE].id, users[UserRole.TECHNICIAN].id],
        due_date=today + timedelta(days=21),
    )


async def seed_db(reset: bool = False) -> None:
    """Заполнение БД демонстрационными данными."""
    async with async_session_factory() as db:
        existing = (
            await db.execute(select(Tenant).where(Tenant.subdomain == DEMO_SUBDOMAIN))
        ).scalar_one_or_none()
        if existing is not None:
            if not reset:
                log.info(f"Tenant '{DEMO_SUBDOMAIN}' already exists, skipping (use --reset to recreate)")
                return
            await purge_tenant(db, existing)

        tenant = await TenantService(db).create("Demo Pharmacy", DEMO_SUBDOMAIN)
        users = await seed_users(db, tenant)
        ctx = await AuthService(db).load_context(users[UserRole.ADMIN].id, tenant.id)

        await seed_quality(db, ctx, users)
        await seed_training(db, ctx, users)

        log.info("Seed completed")
        log.info(f"  Tenant: {tenant.subdomain} ({tenant.id})")
        for email, *_ in DEMO_USERS:
            log.info(f"  User: {email} / {DEMO_PASSWORD}")


async def main() -> None:
    """Главная функция CLI."""
    parser = argparse.ArgumentParser(description="Заполнение БД демонстрационными данными QMS")
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Удалить демо-тенант и создать заново",
    )
    args = parser.parse_args()

    try:
        await seed_db(reset=args.reset)
    except Exception as e:
        log.error(f"Ошибка при заполнении БД: {e}", exc_info=True)
        sys.exit(1)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
