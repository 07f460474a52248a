import json
import logging
import uuid
from datetime import date
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from caseace.auth.models import User
from caseace.auth.service import create_audit_log
from caseace.billing.models import InvoiceStatus
from caseace.billing.schemas import (
    BulkDraftRequest,
    BulkDraftResult,
    ConsolidateRequest,
    ConsolidateResult,
    DraftFromTimeEntries,
    ExpenseCreate,
    ExpenseResponse,
    FinancialSummary,
    InvoiceCreate,
    InvoiceDetailResponse,
    InvoiceResponse,
    InvoiceStatusChange,
    PaymentCreate,
    PaymentResponse,
    UnbilledClientGroup,
)
from caseace.billing.service import (
    BillingError,
    consolidate_draft_invoices,
    create_bulk_draft_invoices,
    create_draft_invoice_from_time_entries,
    create_expense,
    create_invoice,
    create_payment,
    get_expenses,
    get_financial_summary,
    get_invoices,
    get_payments,
    get_unbilled_time_by_client,
    get_visible_invoice,
    send_invoice,
    update_invoice_status,
)
from caseace.common.pagination import PaginatedResponse
from caseace.database import get_db
from caseace.dependencies import STAFF_ROLES, get_current_user, require_roles
from caseace.emails.service import EmailDeliveryError
from caseace.time_tracking.models import InvoiceEntryStatus

logger = logging.getLogger(__name__)

router = APIRouter()

BILLING_ROLES = ("partner", "associate")

BillingUser = Annotated[User, Depends(require_roles(*BILLING_ROLES))]
StaffUser = Annotated[User, Depends(require_roles(*STAFF_ROLES))]


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


# ── Invoices ──────────────────────────────────────────────────────────


@router.post("/invoices", response_model=InvoiceDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_new_invoice(
    data: InvoiceCreate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: BillingUser,
):
    try:
        invoice = await create_invoice(db, data)
    except BillingError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    await create_audit_log(
        db, current_user.id, "invoice", str(invoice.id), "create",
        changes_json=json.dumps(data.model_dump(), default=str),
        ip_address=_client_ip(request),
    )
    return invoice


@router.get("/invoices", response_model=PaginatedResponse)
async def list_invoices(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=25, ge=1, le=100),
    case_id: Optional[uuid.UUID] = None,
    client_id: Optional[uuid.UUID] = None,
    invoice_status: Optional[InvoiceStatus] = Query(default=None, alias="status"),
):
    invoices, total = await get_invoices(db, current_user, page, page_size, case_id, client_id, invoice_status)
    items = [InvoiceResponse.model_validate(i).model_dump() for i in invoices]
    return PaginatedResponse.create(items=items, total=total, page=page, page_size=page_size)


@router.get("/invoices/{invoice_id}", response_model=InvoiceDetailResponse)
async def get_single_invoice(
    invoice_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    return await get_visible_invoice(db, current_user, invoice_id)


@router.patch("/invoices/{invoice_id}/status", response_model=InvoiceResponse)
async def change_invoice_status(
    invoice_id: uuid.UUID,
    data: InvoiceStatusChange,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: BillingUser,
):
    invoice = await get_visible_invoice(db, current_user, invoice_id)
    old_status = invoice.status.value
    updated = await update_invoice_status(db, invoice, data.status)
    await create_audit_log(
        db, current_user.id, "invoice", str(invoice_id), "status_change",
        changes_json=json.dumps({"status": {"old": old_status, "new": data.status.value}}),
        ip_address=_client_ip(request),
    )
    return updated


@router.post("/invoices/{invoice_id}/send")
async def send_invoice_to_client(
    invoice_id: uuid.UUID,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: BillingUser,
):
    invoice = await get_visible_invoice(db, current_user, invoice_id)
    try:
        recipient = await send_invoice(db, invoice)
    except EmailDeliveryError:
        logger.exception("Failed to send invoice %s", invoice.invoice_number)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to send invoice email")
    await create_audit_log(
        db, current_user.id, "invoice", str(invoice_id), "send",
        changes_json=json.dumps({"recipient": recipient}),
        ip_address=_client_ip(request),
    )
    return {"message": "Invoice sent successfully", "recipient": recipient}


@router.get("/invoices/{invoice_id}/payments", response_model=list[PaymentResponse])
async def list_invoice_payments(
    invoice_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    await get_visible_invoice(db, current_user, invoice_id)
    return await get_payments(db, invoice_id)


# ── Payments ──────────────────────────────────────────────────────────


@router.post("/payments", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def record_payment(
    data: PaymentCreate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: BillingUser,
):
    payment = await create_payment(db, data, current_user.id)
    await create_audit_log(
        db, current_user.id, "payment", str(payment.id), "payment",
        changes_json=json.dumps(data.model_dump(), default=str),
        ip_address=_client_ip(request),
    )
    return payment


@router.get("/summary", response_model=FinancialSummary)
async def financial_summary(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: BillingUser,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    client_id: Optional[uuid.UUID] = None,
):
    return await get_financial_summary(db, start_date, end_date, client_id)


# ── Expenses ──────────────────────────────────────────────────────────


@router.post("/expenses", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
async def create_new_expense(
    data: ExpenseCreate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: StaffUser,
):
    expense = await create_expense(db, data, current_user.id)
    await create_audit_log(
        db, current_user.id, "expense", str(expense.id), "create",
        changes_json=json.dumps(data.model_dump(), default=str),
        ip_address=_client_ip(request),
    )
    return expense


@router.get("/expenses", response_model=list[ExpenseResponse])
async def list_expenses(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: StaffUser,
    case_id: Optional[uuid.UUID] = None,
    invoice_status: Optional[InvoiceEntryStatus] = None,
):
    return await get_expenses(db, case_id, invoice_status)


# ── Drafts ────────────────────────────────────────────────────────────


@router.get("/unbilled-time", response_model=list[UnbilledClientGroup])
async def unbilled_time_by_client(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: BillingUser,
    client_id: Optional[uuid.UUID] = None,
):
    return await get_unbilled_time_by_client(db, client_id)


@router.post("/draft-from-time-entries", response_model=InvoiceDetailResponse, status_code=status.HTTP_201_CREATED)
async def draft_from_time_entries(
    data: DraftFromTimeEntries,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: BillingUser,
):
    try:
        invoice = await create_draft_invoice_from_time_entries(
            db, data.time_entry_ids, data.client_id, data.case_id, data.due_date
        )
    except BillingError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    await create_audit_log(
        db, current_user.id, "invoice", str(invoice.id), "create",
        changes_json=json.dumps(data.model_dump(), default=str),
        ip_address=_client_ip(request),
    )
    return invoice


@router.post("/bulk-draft-invoices", response_model=BulkDraftResult)
async def bulk_draft_invoices(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: BillingUser,
    data: Optional[BulkDraftRequest] = None,
):
    period = (data or BulkDraftRequest()).period
    result = await create_bulk_draft_invoices(db, period)
    await create_audit_log(
        db, current_user.id, "invoice", "bulk", "bulk_draft",
        changes_json=json.dumps({"period": period, "created": result["created"], "errors": len(result["errors"])}),
        ip_address=_client_ip(request),
    )
    return result


@router.post("/consolidate-drafts", response_model=ConsolidateResult)
async def consolidate_drafts(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: BillingUser,
    data: Optional[ConsolidateRequest] = None,
):
    case_id = data.case_id if data else None
    result = await consolidate_draft_invoices(db, case_id)
    await create_audit_log(
        db, current_user.id, "invoice", str(case_id) if case_id else "all", "consolidate",
        changes_json=json.dumps({"groups_merged": result["groups_merged"], "invoices_removed": result["invoices_removed"]}),
        ip_address=_client_ip(request),
    )
    return result
