"""
Buyer repair requests (/api/buyer/repair-requests).
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.database import get_db
from app.models.repair import RepairStatus
from app.models.user import User
from app.modules.auth.dependencies import get_current_buyer
from app.schemas.repair import (
    CancelRequest,
    RepairRequestCreate,
    RepairRequestDetail,
    RepairRequestListResponse,
    RepairRequestResponse,
    RepairRequestSummary,
)
from app.services import repair_workflow
from app.utils.pagination import paginate

router = APIRouter()


async def _detail_response(db: AsyncSession, request_id: str, buyer_id: str, message: Optional[str] = None):
    repair_request = await repair_workflow.load_request(db, request_id, buyer_id=buyer_id, with_details=True)
    return RepairRequestResponse(message=message, repair_request=RepairRequestDetail.model_validate(repair_request))


@router.post("", response_model=RepairRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_repair_request(
    body: RepairRequestCreate,
    current_user: User = Depends(get_current_buyer),
    db: AsyncSession = Depends(get_db)
):
    """Send a repair request to a verified repair center"""
    center = await repair_workflow.get_bookable_repair_center(db, body.repair_center_id)
    repair_request = await repair_workflow.create_request(db, current_user, center, body)
    await db.commit()
    return await _detail_response(db, repair_request.id, current_user.id, "Repair request created")


@router.get("", response_model=RepairRequestListResponse)
async def list_repair_requests(
    page: int = Query(1),
    limit: int = Query(10),
    status: Optional[RepairStatus] = None,
    current_user: User = Depends(get_current_buyer),
    db: AsyncSession = Depends(get_db)
):
    query = repair_workflow.build_list_query(buyer_id=current_user.id, status=status)
    page_data = await paginate(db, query, page, limit)
    return RepairRequestListResponse(
        repair_requests=[RepairRequestSummary.model_validate(r) for r in page_data["items"]],
        pagination=page_data["pagination"],
    )


@router.get("/{request_id}", response_model=RepairRequestResponse)
async def get_repair_request(
    request_id: str,
    current_user: User = Depends(get_current_buyer),
    db: AsyncSession = Depends(get_db)
):
    return await _detail_response(db, request_id, current_user.id)


@router.post("/{request_id}/quotes/{quote_id}/accept", response_model=RepairRequestResponse)
async def accept_quote(
    request_id: str,
    quote_id: str,
    current_user: User = Depends(get_current_buyer),
    db: AsyncSession = Depends(get_db)
):
    repair_request = await repair_workflow.load_request(db, request_id, buyer_id=current_user.id, for_update=True)
    await repair_workflow.accept_quote(db, repair_request, quote_id, current_user)
    await db.commit()
    return await _detail_response(db, request_id, current_user.id, "Quote accepted")


@router.post("/{request_id}/quotes/{quote_id}/decline", response_model=RepairRequestResponse)
async def decline_quote(
    request_id: str,
    quote_id: str,
    current_user: User = Depends(get_current_buyer),
    db: AsyncSession = Depends(get_db)
):
    repair_request = await repair_workflow.load_request(db, request_id, buyer_id=current_user.id, for_update=True)
    await repair_workflow.decline_quote(db, repair_request, quote_id, current_user)
    await db.commit()
    return await _detail_response(db, request_id, current_user.id, "Quote declined")


@router.post("/{request_id}/cancel", response_model=RepairRequestResponse)
async def cancel_repair_request(
    request_id: str,
    body: Optional[CancelRequest] = None,
    current_user: User = Depends(get_current_buyer),
    db: AsyncSession = Depends(get_db)
):
    repair_request = await repair_workflow.load_request(db, request_id, buyer_id=current_user.id, for_update=True)
    await repair_workflow.cancel_request(
        db, repair_request, current_user.id, (body.reason if body else None) or "Cancelled by buyer"
    )
    await db.commit()
    return await _detail_response(db, request_id, current_user.id, "Repair request cancelled")
