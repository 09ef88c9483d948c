"""
API Endpoints for Domain Management

Handles:
1. List the user's active domains
2. Get a domain with its per-tool record counts
3. Register a domain (normalized, one active record per user)
4. Update domain settings
5. Archive a domain
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from seo_dashboard.auth.dependencies import get_current_user
from seo_dashboard.auth.models import User
from seo_dashboard.database.models import Domain, DomainStatus
from seo_dashboard.database.operations import domains as domain_ops
from seo_dashboard.database.session import get_db
from seo_dashboard.utils.domains import is_valid_domain, normalize_domain

from .errors import APIError, NotFoundError, ValidationError, ok

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/domains",
    tags=["Domains"],
    dependencies=[Depends(get_current_user)],
)


# =============================================================================
# REQUEST MODELS
# =============================================================================

class CreateDomainRequest(BaseModel):
    """Request to register a domain."""
    domain: str = Field(..., min_length=3, max_length=255)
    name: Optional[str] = Field(default=None, max_length=255)
    businessName: Optional[str] = Field(default=None, max_length=255)
    city: Optional[str] = Field(default=None, max_length=100)
    state: Optional[str] = Field(default=None, max_length=50)


class UpdateDomainRequest(BaseModel):
    """Request to update domain settings."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    businessName: Optional[str] = Field(default=None, max_length=255)
    city: Optional[str] = Field(default=None, max_length=100)
    state: Optional[str] = Field(default=None, max_length=50)
    isPinned: Optional[bool] = None
    status: Optional[DomainStatus] = None


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def get_owned_domain(db: Session, domain_id: str, user: User) -> Domain:
    """The user's domain, or 404."""
    record = domain_ops.get_domain(db, domain_id, user.id)
    if record is None:
        raise NotFoundError("Domain not found")
    return record


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("")
async def list_domains(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List active domains, newest first."""
    records = domain_ops.get_user_domains(db, current_user.id)
    return ok([domain_ops.domain_to_dict(r) for r in records])


@router.post("", status_code=201)
async def create_domain(
    request: CreateDomainRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    domain = normalize_domain(request.domain)
    if not is_valid_domain(domain):
        raise ValidationError("Invalid domain format")

    try:
        record = domain_ops.create_domain(
            db,
            user_id=current_user.id,
            name=request.name or domain,
            domain=domain,
            business_name=request.businessName,
            city=request.city,
            state=request.state,
        )
    except domain_ops.DomainExistsError as e:
        raise APIError(400, str(e), code="DOMAIN_EXISTS")

    return ok(domain_ops.domain_to_dict(record))


@router.get("/{domain_id}")
async def get_domain(
    domain_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Domain details plus record counts for each tool."""
    record = get_owned_domain(db, domain_id, current_user)
    data = domain_ops.domain_to_dict(record)
    data["counts"] = domain_ops.get_domain_tool_counts(db, domain_id, current_user.id)
    return ok(data)


@router.patch("/{domain_id}")
async def update_domain(
    domain_id: str,
    request: UpdateDomainRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    record = domain_ops.update_domain(
        db,
        domain_id,
        current_user.id,
        name=request.name,
        business_name=request.businessName,
        city=request.city,
        state=request.state,
        is_pinned=request.isPinned,
        status=request.status,
    )
    if record is None:
        raise NotFoundError("Domain not found")
    return ok(domain_ops.domain_to_dict(record))


@router.delete("/{domain_id}")
async def delete_domain(
    domain_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Archive the domain. Its tool records keep their domain link."""
    if not domain_ops.archive_domain(db, domain_id, current_user.id):
        raise NotFoundError("Domain not found")
    logger.info(f"User {current_user.id} archived domain {domain_id}")
    return ok({"id": domain_id, "archived": True})
