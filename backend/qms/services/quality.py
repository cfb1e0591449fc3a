"""Сервисы отклонений, CAPA и change control."""

from __future__ import annotations

from enum import Enum
from typing import Any
from uuid import UUID

from qms.core.errors import ConflictError, ValidationError
from qms.core.security import RequestContext
from qms.db.base import utcnow
from qms.db.enums import CAPAStatus, ChangeControlStatus, DeviationStatus
from qms.db.models.quality import CAPA, ChangeControl, Deviation
from qms.services.records import RecordService


class CAPAService(RecordService[CAPA]):
    model = CAPA
    entity_type = "capa"
    resource_name = "CAPA"
    initial_status = CAPAStatus.OPEN
    number_field = "capa_number"
    number_prefix = "CAPA"
    search_fields = ("title", "description", "source_reference")

    async def apply_status_side_effects(
        self, ctx: RequestContext, obj: CAPA, previous: Enum, target: Enum
    ) -> None:
        if target == CAPAStatus.COMPLETED:
            obj.completion_date = utcnow()
            if obj.verification_comments and obj.verified_by is None:
                obj.verified_by = ctx.user_id
                obj.verification_date = obj.completion_date.date()


class DeviationService(RecordService[Deviation]):
    model = Deviation
    entity_type = "deviation"
    resource_name = "Deviation"
    initial_status = DeviationStatus.OPEN
    number_field = "deviation_number"
    number_prefix = "DEV"
    search_fields = ("title", "description", "batch_number")

    async def prepare_create(self, ctx: RequestContext, obj: Deviation) -> None:
        if obj.detected_by is None:
            obj.detected_by = ctx.user_id

    async def apply_status_side_effects(
        self, ctx: RequestContext, obj: Deviation, previous: Enum, target: Enum
    ) -> None:
        if target == DeviationStatus.CLOSED:
            obj.closure_date = utcnow()
            if obj.verification_comments:
                obj.verified_by = ctx.user_id

    async def create_capa(
        self, ctx: RequestContext, deviation_id: UUID, data: dict[str, Any]
    ) -> tuple[Deviation, CAPA]:
        """
        Создаёт CAPA по отклонению и связывает их.

        Отклонение должно быть в статусе capa_required и ещё не иметь CAPA;
        после создания оно переходит в capa_in_progress.
        """
        deviation = await self.get(ctx, deviation_id)
        if deviation.capa_id is not None:
            raise ConflictError(
                "Deviation already has a linked CAPA",
                details={"capa_id": str(deviation.capa_id)},
            )
        if deviation.status != DeviationStatus.CAPA_REQUIRED:
            raise ValidationError(
                "CAPA can only be raised for a deviation in capa_required status",
                details={"status": deviation.status.value},
            )

        capa_data = {
            "title": data.get("title") or f"CAPA for {deviation.deviation_number}: {deviation.title}",
            "description": data.get("description") or deviation.description,
            "root_cause": deviation.root_cause,
            "corrective_action": deviation.corrective_action,
            "preventive_action": deviation.preventive_action,
            **{k: v for k, v in data.items() if v is not None},
            "source": "Deviation",
            "source_id": deviation.id,
            "source_reference": deviation.deviation_number,
        }
        capa = await CAPAService(self.db).create(ctx, capa_data)

        deviation.capa_id = capa.id
        deviation = await self.change_status(
            ctx,
            deviation.id,
            DeviationStatus.CAPA_IN_PROGRESS,
            comment=f"CAPA {capa.capa_number} raised",
        )
        return deviation, capa


class ChangeControlService(RecordService[ChangeControl]):
    model = ChangeControl
    entity_type = "change_control"
    resource_name = "ChangeControl"
    initial_status = ChangeControlStatus.INITIATED
    number_field = "change_number"
    number_prefix = "CC"
    search_fields = ("title", "description", "change_type")

    async def prepare_create(self, ctx: RequestContext, obj: ChangeControl) -> None:
        if obj.requestor_id is None:
            obj.requestor_id = ctx.user_id

    async def apply_status_side_effects(
        self, ctx: RequestContext, obj: ChangeControl, previous: Enum, target: Enum
    ) -> None:
        if target == ChangeControlStatus.APPROVED:
            obj.approver_id = ctx.user_id
        elif target == ChangeControlStatus.COMPLETED:
            obj.completion_date = utcnow()
