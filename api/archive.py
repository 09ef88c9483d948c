"""
API Endpoints for the Archive

Unassigned records (audits and local campaigns with no domain) can be
assigned to a domain or archived. Archived copies can be deleted for good.
"""

import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from seo_dashboard.auth.dependencies import get_current_user
from seo_dashboard.auth.models import User
from seo_dashboard.database.operations import archive as archive_ops
from seo_dashboard.database.session import get_db

from .domains import get_owned_domain
from .errors import ValidationError, ok

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/archive",
    tags=["Archive"],
    dependencies=[Depends(get_current_user)],
)


class ArchiveActionRequest(BaseModel):
    action: Literal["assign", "archive", "delete"]
    type: Literal["audits", "localCampaigns"]
    ids: List[str] = Field(..., min_length=1)
    domainId: Optional[str] = None


ACTIONS = {
    ("assign", "audits"): archive_ops.assign_audits_to_domain,
    ("assign", "localCampaigns"): archive_ops.assign_local_campaigns_to_domain,
    ("archive", "audits"): archive_ops.archive_audits,
    ("archive", "localCampaigns"): archive_ops.archive_local_campaigns,
    ("delete", "audits"): archive_ops.delete_archived_audits,
    ("delete", "localCampaigns"): archive_ops.delete_archived_local_campaigns,
}


@router.get("")
async def get_archive(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ok({
        "unassigned": archive_ops.get_unassigned_data(db, current_user.id),
        "archived": archive_ops.get_archived_data(db, current_user.id),
    })


@router.post("")
async def archive_action(
    request: ArchiveActionRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    operation = ACTIONS[(request.action, request.type)]

    if request.action == "assign":
        if not request.domainId:
            raise ValidationError("domainId is required to assign records")
        get_owned_domain(db, request.domainId, current_user)
        count = operation(db, current_user.id, request.ids, request.domainId)
    else:
        count = operation(db, current_user.id, request.ids)

    logger.info(f"Archive {request.action} on {count} {request.type} for user {current_user.id}")
    return ok({"action": request.action, "type": request.type, "count": count})
