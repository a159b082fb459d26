"""
Repair request workflow
=======================

Every status change goes through `transition`, which checks the move
against ALLOWED_TRANSITIONS and writes a RepairLog row in the same unit
of work. Mutating callers load the request with `for_update=True` so
concurrent changes to one request serialize on the row lock.

    pending -> quoted -> accepted -> in_progress <-> awaiting_parts
                                     in_progress -> repaired -> [quality_check] -> completed
    pending / quoted / accepted -> cancelled
"""
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, FrozenSet, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.config import settings
from app.core.exceptions import (
    InvalidStatusError,
    InvalidStatusTransitionError,
    KycNotApprovedError,
    QuoteExpiredError,
    QuoteNotFoundError,
    RepairCenterNotFoundError,
    RepairRequestNotFoundError,
    ValidationError,
)
from app.core.logging_config import logger
from app.models.business_profile import KycStatus, RepairCenterProfile
from app.models.repair import QuoteStatus, RepairLog, RepairQuote, RepairRequest, RepairStatus
from app.models.user import User, UserStatus
from app.schemas.repair import QuoteCreate

S = RepairStatus

ALLOWED_TRANSITIONS: Dict[RepairStatus, FrozenSet[RepairStatus]] = {
    S.PENDING: frozenset({S.QUOTED, S.CANCELLED}),
    S.QUOTED: frozenset({S.ACCEPTED, S.PENDING, S.CANCELLED}),
    S.ACCEPTED: frozenset({S.IN_PROGRESS, S.CANCELLED}),
    S.IN_PROGRESS: frozenset({S.AWAITING_PARTS, S.REPAIRED}),
    S.AWAITING_PARTS: frozenset({S.IN_PROGRESS}),
    S.REPAIRED: frozenset({S.QUALITY_CHECK, S.COMPLETED}),
    S.QUALITY_CHECK: frozenset({S.COMPLETED, S.IN_PROGRESS}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
}

# Statuses a repair center may set through the generic status endpoint.
# quoted/accepted/cancelled only happen through their own actions.
REPAIR_CENTER_SETTABLE: FrozenSet[RepairStatus] = frozenset({
    S.IN_PROGRESS, S.AWAITING_PARTS, S.REPAIRED, S.QUALITY_CHECK, S.COMPLETED,
})

SORTABLE_FIELDS = {
    "created_at": RepairRequest.created_at,
    "updated_at": RepairRequest.updated_at,
    "status": RepairRequest.status,
    "device_type": RepairRequest.device_type,
}

CENTS = Decimal("0.01")


def can_transition(current: RepairStatus, target: RepairStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def is_terminal(status: RepairStatus) -> bool:
    return not ALLOWED_TRANSITIONS.get(status)


# ==========================================
# Loading
# ==========================================

async def get_repair_center_for_user(db: AsyncSession, user: User) -> RepairCenterProfile:
    result = await db.execute(select(RepairCenterProfile).where(RepairCenterProfile.user_id == user.id))
    center = result.scalar_one_or_none()
    if center is None:
        raise RepairCenterNotFoundError()
    return center


async def get_bookable_repair_center(db: AsyncSession, repair_center_id: str) -> RepairCenterProfile:
    """A repair center buyers may send requests to: KYC approved and account active"""
    result = await db.execute(
        select(RepairCenterProfile)
        .join(User, User.id == RepairCenterProfile.user_id)
        .where(
            RepairCenterProfile.id == repair_center_id,
            RepairCenterProfile.kyc_status == KycStatus.APPROVED,
            User.status == UserStatus.ACTIVE,
        )
    )
    center = result.scalar_one_or_none()
    if center is None:
        raise RepairCenterNotFoundError(repair_center_id)
    return center


async def load_request(
    db: AsyncSession,
    request_id: str,
    repair_center_id: Optional[str] = None,
    buyer_id: Optional[str] = None,
    for_update: bool = False,
    with_details: bool = False,
) -> RepairRequest:
    """
    Load a repair request visible to the caller. A request owned by
    someone else is reported as not found.
    """
    query = select(RepairRequest).where(RepairRequest.id == request_id)
    if repair_center_id is not None:
        query = query.where(RepairRequest.repair_center_id == repair_center_id)
    if buyer_id is not None:
        query = query.where(RepairRequest.user_id == buyer_id)
    if for_update:
        query = query.with_for_update()
    if with_details:
        query = query.options(
            selectinload(RepairRequest.quotes),
            selectinload(RepairRequest.logs),
        ).execution_options(populate_existing=True)

    repair_request = (await db.execute(query)).scalar_one_or_none()
    if repair_request is None:
        raise RepairRequestNotFoundError(request_id)
    return repair_request


def build_list_query(
    repair_center_id: Optional[str] = None,
    buyer_id: Optional[str] = None,
    status: Optional[RepairStatus] = None,
    search: Optional[str] = None,
    sort_by: str = "created_at",
    order: str = "desc",
):
    query = select(RepairRequest)
    if repair_center_id is not None:
        query = query.where(RepairRequest.repair_center_id == repair_center_id)
    if buyer_id is not None:
        query = query.where(RepairRequest.user_id == buyer_id)
    if status is not None:
        query = query.where(RepairRequest.status == status)
    if search:
        term = f"%{search.strip()}%"
        query = query.where(or_(
            RepairRequest.device_type.ilike(term),
            RepairRequest.brand.ilike(term),
            RepairRequest.model.ilike(term),
            RepairRequest.issue_description.ilike(term),
        ))

    column = SORTABLE_FIELDS.get(sort_by, RepairRequest.created_at)
    return query.order_by(column.asc() if order.lower() == "asc" else column.desc())


# ==========================================
# Transitions
# ==========================================

async def transition(
    db: AsyncSession,
    repair_request: RepairRequest,
    new_status: RepairStatus,
    actor_id: Optional[str],
    notes: Optional[str] = None,
) -> RepairLog:
    """Move a request to new_status and log it. Raises InvalidStatusTransitionError."""
    current = repair_request.status
    if not can_transition(current, new_status):
        raise InvalidStatusTransitionError(current.value, new_status.value)

    repair_request.status = new_status
    if new_status == S.COMPLETED:
        repair_request.completed_date = datetime.utcnow()

    log = RepairLog(
        repair_request_id=repair_request.id,
        user_id=actor_id,
        from_status=current,
        status=new_status,
        notes=notes,
    )
    db.add(log)
    await db.flush()

    logger.log_repair_event(repair_request.id, current.value, new_status.value, actor_id=actor_id)
    return log


async def create_request(db: AsyncSession, buyer: User, center: RepairCenterProfile, data) -> RepairRequest:
    repair_request = RepairRequest(
        user_id=buyer.id,
        repair_center_id=center.id,
        device_type=data.device_type,
        brand=data.brand,
        model=data.model,
        issue_description=data.issue_description,
        pickup_required=data.pickup_required,
        pickup_address=data.pickup_address,
        scheduled_date=data.scheduled_date,
        status=S.PENDING,
    )
    db.add(repair_request)
    await db.flush()

    db.add(RepairLog(repair_request_id=repair_request.id, user_id=buyer.id, from_status=None, status=S.PENDING))
    await db.flush()
    logger.log_repair_event(repair_request.id, None, S.PENDING.value, actor_id=buyer.id)
    return repair_request


async def _reject_pending_quotes(db: AsyncSession, repair_request_id: str, keep_quote_id: Optional[str] = None) -> None:
    query = update(RepairQuote).where(
        RepairQuote.repair_request_id == repair_request_id,
        RepairQuote.status == QuoteStatus.PENDING,
    )
    if keep_quote_id is not None:
        query = query.where(RepairQuote.id != keep_quote_id)
    await db.execute(query.values(status=QuoteStatus.REJECTED).execution_options(synchronize_session=False))


def quote_total(data: QuoteCreate) -> Decimal:
    return (data.labor_cost + data.parts_cost + data.tax_amount).quantize(CENTS, rounding=ROUND_HALF_UP)


async def create_quote(
    db: AsyncSession,
    repair_request: RepairRequest,
    center: RepairCenterProfile,
    data: QuoteCreate,
    actor_id: str,
) -> RepairQuote:
    """Repair center accepts a pending request by quoting it"""
    if center.kyc_status != KycStatus.APPROVED:
        raise KycNotApprovedError()
    if repair_request.status != S.PENDING:
        raise InvalidStatusError(
            f"Only pending requests can be accepted (current: {repair_request.status.value})"
        )

    total = quote_total(data)
    quote = RepairQuote(
        repair_request_id=repair_request.id,
        repair_center_id=center.id,
        labor_cost=data.labor_cost,
        parts_cost=data.parts_cost,
        tax_amount=data.tax_amount,
        total_cost=total,
        estimated_days=data.estimated_days,
        valid_until=datetime.utcnow() + timedelta(days=settings.QUOTE_VALIDITY_DAYS),
        status=QuoteStatus.PENDING,
        notes=data.notes,
    )
    db.add(quote)
    await db.flush()

    await transition(db, repair_request, S.QUOTED, actor_id, notes=f"Quote {quote.id} issued, total {total}")
    return quote


async def _get_quote(db: AsyncSession, repair_request: RepairRequest, quote_id: str) -> RepairQuote:
    result = await db.execute(
        select(RepairQuote)
        .where(RepairQuote.id == quote_id, RepairQuote.repair_request_id == repair_request.id)
        .with_for_update()
    )
    quote = result.scalar_one_or_none()
    if quote is None:
        raise QuoteNotFoundError(quote_id)
    return quote


async def accept_quote(db: AsyncSession, repair_request: RepairRequest, quote_id: str, buyer: User) -> RepairQuote:
    quote = await _get_quote(db, repair_request, quote_id)
    if quote.status != QuoteStatus.PENDING:
        raise InvalidStatusError(f"Quote is {quote.status.value}, not pending")

    if quote.is_expired():
        quote.status = QuoteStatus.EXPIRED
        others = await db.execute(
            select(RepairQuote.id).where(
                RepairQuote.repair_request_id == repair_request.id,
                RepairQuote.status == QuoteStatus.PENDING,
                RepairQuote.id != quote.id,
            ).limit(1)
        )
        # With no live quote left the request goes back to pending for a new one
        if others.first() is None and repair_request.status == S.QUOTED:
            await transition(db, repair_request, S.PENDING, buyer.id, notes=f"Quote {quote.id} expired")
        # Keep the expiry even though the request fails
        await db.commit()
        logger.info(f"Quote {quote.id} expired before acceptance", extra={"event_type": "quote_expired"})
        raise QuoteExpiredError(quote.id)

    await transition(db, repair_request, S.ACCEPTED, buyer.id, notes=f"Quote {quote.id} accepted")
    quote.status = QuoteStatus.ACCEPTED
    await _reject_pending_quotes(db, repair_request.id, keep_quote_id=quote.id)
    await db.flush()
    return quote


async def decline_quote(db: AsyncSession, repair_request: RepairRequest, quote_id: str, buyer: User) -> RepairQuote:
    """Buyer turns a quote down; the request goes back to pending for a new quote"""
    quote = await _get_quote(db, repair_request, quote_id)
    if quote.status != QuoteStatus.PENDING:
        raise InvalidStatusError(f"Quote is {quote.status.value}, not pending")

    await transition(db, repair_request, S.PENDING, buyer.id, notes=f"Quote {quote.id} declined")
    quote.status = QuoteStatus.REJECTED
    await db.flush()
    return quote


async def cancel_request(
    db: AsyncSession,
    repair_request: RepairRequest,
    actor_id: str,
    reason: Optional[str] = None,
) -> RepairLog:
    """Cancellation by the buyer or rejection by the repair center"""
    log = await transition(db, repair_request, S.CANCELLED, actor_id, notes=reason)
    repair_request.cancellation_reason = reason
    await _reject_pending_quotes(db, repair_request.id)
    await db.flush()
    return log


async def set_status(
    db: AsyncSession,
    repair_request: RepairRequest,
    new_status: RepairStatus,
    actor_id: str,
    notes: Optional[str] = None,
) -> RepairLog:
    """Progress update from the repair center"""
    if new_status not in REPAIR_CENTER_SETTABLE:
        raise InvalidStatusError(f"Status '{new_status.value}' cannot be set directly")
    return await transition(db, repair_request, new_status, actor_id, notes)


async def complete_request(
    db: AsyncSession,
    repair_request: RepairRequest,
    actor_id: str,
    notes: Optional[str] = None,
) -> RepairLog:
    if repair_request.status == S.COMPLETED:
        raise ValidationError("Repair request is already completed", code="ALREADY_COMPLETED")
    return await transition(db, repair_request, S.COMPLETED, actor_id, notes or "Repair completed")
