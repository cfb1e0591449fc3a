from __future__ import annotations

from enum import Enum

from qms.core.errors import ForbiddenError
from qms.core.security import RequestContext
from qms.db.base import utcnow
from qms.db.enums import DocumentStatus
from qms.db.models.documents import Document
from qms.services.records import RecordService


class DocumentService(RecordService[Document]):
    """Контролируемые документы (SOP, политики, формы ...)."""

    model = Document
    entity_type = "document"
    resource_name = "Document"
    initial_status = DocumentStatus.DRAFT
    search_fields = ("title", "description")

    async def apply_status_side_effects(
        self, ctx: RequestContext, obj: Document, previous: Enum, target: Enum
    ) -> None:
        if target == DocumentStatus.APPROVED:
            if not ctx.has_permission("can_manage_documents"):
                raise ForbiddenError(
                    "Approving documents requires can_manage_documents",
                    details={"permission": "can_manage_documents"},
                )
            obj.approved_by = ctx.user_id
            obj.approved_at = utcnow()
