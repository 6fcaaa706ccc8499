"""
Audit API endpoints.

Read-only: audit records are written by the interceptor during
the host application's own flushes, never through HTTP. The API
layer is thin and delegates to the audit store and the version
reconstructor.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from entity_audit.models.base import get_db
from entity_audit.schemas.audit import AuditRecordResponse, SnapshotResponse
from entity_audit.services.auditor import default_auditor

router = APIRouter(tags=["Audits"])


@router.get(
    "/audits/{auditable_type}/{auditable_id}",
    response_model=list[AuditRecordResponse],
)
def list_audits(
    auditable_type: str,
    auditable_id: str,
    db: Session = Depends(get_db),
):
    """All audit records of one entity, oldest version first."""
    return default_auditor.store.records_for(auditable_type, auditable_id, db)


@router.get(
    "/audits/{auditable_type}/{auditable_id}/snapshot",
    response_model=SnapshotResponse,
)
def get_snapshot(
    auditable_type: str,
    auditable_id: str,
    at: datetime | None = None,
    version: int | None = Query(default=None, gt=0),
    db: Session = Depends(get_db),
):
    """
    Reconstruct an entity's attributes.

    With `at`, as of that instant; with `version`, right after that
    version; with neither, the latest known state.
    """
    if at is not None and version is not None:
        raise HTTPException(
            status_code=400, detail="Pass either 'at' or 'version', not both"
        )
    try:
        return default_auditor.reconstructor.snapshot(
            auditable_type, auditable_id, db, at=at, version=version
        )
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get(
    "/owners/{owner_type}/{owner_id}/audits",
    response_model=list[AuditRecordResponse],
)
def list_owned_audits(
    owner_type: str,
    owner_id: str,
    db: Session = Depends(get_db),
):
    """Every audit record filed under an owner, oldest first."""
    return default_auditor.store.records_for_owner(owner_type, owner_id, db)
