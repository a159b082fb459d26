"""
Repair center request handling (/api/repair-center/requests).

A repair center only ever sees requests addressed to it; anything else
is reported as not found.
"""
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.database import get_db
from app.models.repair import RepairStatus
from app.models.user import User
from app.modules.auth.dependencies import get_current_repair_center
from app.schemas.repair import (
    CompleteRequest,
    QuoteCreate,
    QuoteIssuedResponse,
    QuoteResponse,
    RejectRequest,
    RepairRequestDetail,
    RepairRequestListResponse,
    RepairRequestResponse,
    RepairRequestSummary,
    StatusUpdateRequest,
)
from app.services import repair_workflow
from app.services.audit_service import record_audit, snapshot
from app.services.auth_service import get_user_by_id
from app.services.email_service import email_service
from app.utils.pagination import paginate

router = APIRouter()

_AUDIT_FIELDS = ("status", "repair_center_id", "completed_date", "cancellation_reason")


async def _detail_response(db: AsyncSession, request_id: str, center_id: str, message: Optional[str] = None):
    repair_request = await repair_workflow.load_request(
        db, request_id, repair_center_id=center_id, with_details=True
    )
    return RepairRequestResponse(message=message, repair_request=RepairRequestDetail.model_validate(repair_request))


@router.get("", response_model=RepairRequestListResponse)
async def list_requests(
    page: int = Query(1),
    limit: int = Query(10),
    status: Optional[RepairStatus] = None,
    search: Optional[str] = None,
    sort_by: str = Query("created_at"),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    current_user: User = Depends(get_current_repair_center),
    db: AsyncSession = Depends(get_db)
):
    """List the repair center's requests with filtering, sorting and pagination"""
    center = await repair_workflow.get_repair_center_for_user(db, current_user)
    query = repair_workflow.build_list_query(
        repair_center_id=center.id, status=status, search=search, sort_by=sort_by, order=order
    )
    page_data = await paginate(db, query, page, limit)
    return RepairRequestListResponse(
        repair_requests=[RepairRequestSummary.model_validate(r) for r in page_data["items"]],
        pagination=page_data["pagination"],
    )


@router.get("/{request_id}", response_model=RepairRequestResponse)
async def get_request(
    request_id: str,
    current_user: User = Depends(get_current_repair_center),
    db: AsyncSession = Depends(get_db)
):
    center = await repair_workflow.get_repair_center_for_user(db, current_user)
    return await _detail_response(db, request_id, center.id)


@router.post("/{request_id}/accept", response_model=QuoteIssuedResponse)
async def accept_request(
    request_id: str,
    body: QuoteCreate,
    request: Request,
    current_user: User = Depends(get_current_repair_center),
    db: AsyncSession = Depends(get_db)
):
    """Accept a pending request by issuing a quote to the buyer"""
    center = await repair_workflow.get_repair_center_for_user(db, current_user)
    repair_request = await repair_workflow.load_request(db, request_id, repair_center_id=center.id, for_update=True)
    before = snapshot(repair_request, _AUDIT_FIELDS)

    quote = await repair_workflow.create_quote(db, repair_request, center, body, current_user.id)
    await record_audit(
        db, current_user.id, "repair_request_accepted", "repair_request", repair_request.id,
        before=before, after={**snapshot(repair_request, _AUDIT_FIELDS), "quote_id": quote.id,
                              "total_cost": str(quote.total_cost)},
        request=request,
    )
    await db.commit()

    buyer = await get_user_by_id(db, repair_request.user_id)
    if buyer:
        await email_service.send_quote_email(
            buyer.email, buyer.name, repair_request.device_type, str(quote.total_cost), quote.valid_until
        )

    return QuoteIssuedResponse(
        message="Repair request accepted and quote sent",
        repair_request=RepairRequestSummary.model_validate(repair_request),
        quote=QuoteResponse.model_validate(quote),
    )


@router.post("/{request_id}/reject", response_model=RepairRequestResponse)
async def reject_request(
    request_id: str,
    body: RejectRequest,
    request: Request,
    current_user: User = Depends(get_current_repair_center),
    db: AsyncSession = Depends(get_db)
):
    center = await repair_workflow.get_repair_center_for_user(db, current_user)
    repair_request = await repair_workflow.load_request(db, request_id, repair_center_id=center.id, for_update=True)
    before = snapshot(repair_request, _AUDIT_FIELDS)

    await repair_workflow.cancel_request(db, repair_request, current_user.id, body.reason)
    await record_audit(
        db, current_user.id, "repair_request_rejected", "repair_request", repair_request.id,
        before=before, after=snapshot(repair_request, _AUDIT_FIELDS), request=request,
    )
    await db.commit()
    return await _detail_response(db, request_id, center.id, "Repair request rejected")


@router.put("/{request_id}/status", response_model=RepairRequestResponse)
async def update_status(
    request_id: str,
    body: StatusUpdateRequest,
    request: Request,
    current_user: User = Depends(get_current_repair_center),
    db: AsyncSession = Depends(get_db)
):
    """Progress a request along the repair workflow"""
    center = await repair_workflow.get_repair_center_for_user(db, current_user)
    repair_request = await repair_workflow.load_request(db, request_id, repair_center_id=center.id, for_update=True)
    before = snapshot(repair_request, _AUDIT_FIELDS)

    await repair_workflow.set_status(db, repair_request, body.status, current_user.id, body.notes)
    await record_audit(
        db, current_user.id, "repair_status_updated", "repair_request", repair_request.id,
        before=before, after=snapshot(repair_request, _AUDIT_FIELDS), request=request,
    )
    await db.commit()
    return await _detail_response(db, request_id, center.id, f"Status updated to {body.status.value}")


@router.post("/{request_id}/complete", response_model=RepairRequestResponse)
async def complete_request(
    request_id: str,
    request: Request,
    body: Optional[CompleteRequest] = None,
    current_user: User = Depends(get_current_repair_center),
    db: AsyncSession = Depends(get_db)
):
    center = await repair_workflow.get_repair_center_for_user(db, current_user)
    repair_request = await repair_workflow.load_request(db, request_id, repair_center_id=center.id, for_update=True)
    before = snapshot(repair_request, _AUDIT_FIELDS)

    await repair_workflow.complete_request(db, repair_request, current_user.id, body.notes if body else None)
    await record_audit(
        db, current_user.id, "repair_request_completed", "repair_request", repair_request.id,
        before=before, after=snapshot(repair_request, _AUDIT_FIELDS), request=request,
    )
    await db.commit()
    return await _detail_response(db, request_id, center.id, "Repair request completed")
