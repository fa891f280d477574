from fastapi import FastAPI, Depends, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from uuid import UUID
from datetime import date
from typing import List, Optional

from api.schemas import (
    # Catalog
    CreateBranchRequest, UpdateBranchRequest, BranchResponse, CreateSpaceRequest,
    UpdateSpaceRequest, SpaceResponse, CreateCustomerRequest, UpdateCustomerRequest,
    CustomerResponse,
    # Reservation
    CreateReservationRequest, ReservationResponse,
    # Payment
    RegisterPaymentRequest, ConfirmPaymentRequest, PaymentResponse,
    ReservationBalanceResponse, PaymentReportResponse,
    # Errors
    ErrorResponse,
)
from api.dependencies import get_catalog_service, get_reservation_service, get_payment_service
from application.services import CatalogService, ReservationService, PaymentService
from domain.enums import ReservationStatus, PaymentStatus, PaymentMethod, PaymentPurpose
from domain.exceptions import BookingError, InvalidInputError
from infrastructure.app_logger import setup_logging, get_logger
from infrastructure.config import get_settings

settings = get_settings()
setup_logging(settings.LOG_LEVEL)
logger = get_logger("api")

app = FastAPI(
    title=settings.APP_NAME,
    description="Booking engine for rental spaces: conflict-free reservations and payment ledger",
    version=settings.APP_VERSION,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid input or business rule violation"},
        404: {"model": ErrorResponse, "description": "Resource not found"},
        409: {"model": ErrorResponse, "description": "Conflict with existing data"},
        503: {"model": ErrorResponse, "description": "Directory lookup unavailable"},
    }
)


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    loc = errors[0].get("loc", ()) if errors else ()
    field = "body"
    if loc:
        # JSON decode errors point at a character offset, not a field
        field = str(loc[0] if isinstance(loc[-1], int) else loc[-1])
    error = InvalidInputError(field, errors[0].get("msg") if errors else None)
    error.details["errors"] = [
        {"loc": [str(p) for p in e.get("loc", ())], "msg": e.get("msg", "")} for e in errors
    ]
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# ============================================================================
# HEALTH & ENUM REFERENCE ENDPOINTS
# ============================================================================

@app.get("/api/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "message": "API is running"}

@app.get("/api/enums/reservation-status", tags=["Enum Reference"])
async def get_reservation_statuses():
    """Get all ReservationStatus enum values"""
    return {
        "values": [item.name for item in ReservationStatus],
        "description": "Reservation status values: PENDING, CONFIRMED, CANCELLED"
    }

@app.get("/api/enums/payment-status", tags=["Enum Reference"])
async def get_payment_statuses():
    """Get all PaymentStatus enum values"""
    return {
        "values": [item.name for item in PaymentStatus],
        "description": "Payment status values: PENDING, PAID, CANCELLED, REFUNDED"
    }

@app.get("/api/enums/payment-method", tags=["Enum Reference"])
async def get_payment_methods():
    """Get all PaymentMethod enum values"""
    return {
        "values": [item.name for item in PaymentMethod],
        "description": "Payment method values: PIX, CARD, CASH, BOLETO"
    }

@app.get("/api/enums/payment-purpose", tags=["Enum Reference"])
async def get_payment_purposes():
    """Get all PaymentPurpose enum values"""
    return {
        "values": [item.name for item in PaymentPurpose],
        "description": "Payment purpose values: DEPOSIT, BALANCE"
    }

# ============================================================================
# CATALOG ENDPOINTS
# ============================================================================

@app.post("/api/branches", response_model=BranchResponse, status_code=201, tags=["Catalog"])
async def create_branch(
    request: CreateBranchRequest,
    service: CatalogService = Depends(get_catalog_service)
):
    """Create branch"""
    branch = await service.create_branch(request.name, request.state, request.city, request.address)
    return BranchResponse(**branch.model_dump())

@app.get("/api/branches/{branch_id}", response_model=BranchResponse, tags=["Catalog"])
async def get_branch(
    branch_id: UUID,
    service: CatalogService = Depends(get_catalog_service)
):
    """Get branch by ID"""
    branch = await service.get_branch(branch_id)
    return BranchResponse(**branch.model_dump())

@app.get("/api/branches", response_model=List[BranchResponse], tags=["Catalog"])
async def search_branches(
    q: Optional[str] = None,
    service: CatalogService = Depends(get_catalog_service)
):
    """List branches, optionally matching name, city, state or address"""
    branches = await service.search_branches(q)
    return [BranchResponse(**b.model_dump()) for b in branches]

@app.patch("/api/branches/{branch_id}", response_model=BranchResponse, tags=["Catalog"])
async def update_branch(
    branch_id: UUID,
    request: UpdateBranchRequest,
    service: CatalogService = Depends(get_catalog_service)
):
    """Update branch"""
    branch = await service.update_branch(branch_id, **request.model_dump(exclude_unset=True))
    return BranchResponse(**branch.model_dump())

@app.delete("/api/branches/{branch_id}", status_code=204, tags=["Catalog"])
async def remove_branch(
    branch_id: UUID,
    service: CatalogService = Depends(get_catalog_service)
):
    """Remove a branch without spaces"""
    await service.remove_branch(branch_id)
    return Response(status_code=204)

@app.post("/api/branches/{branch_id}/spaces", response_model=SpaceResponse, status_code=201, tags=["Catalog"])
async def create_space(
    branch_id: UUID,
    request: CreateSpaceRequest,
    service: CatalogService = Depends(get_catalog_service)
):
    """Create space in a branch"""
    space = await service.create_space(
        branch_id=branch_id,
        name=request.name,
        capacity=request.capacity,
        price_per_hour=request.price_per_hour,
        description=request.description,
        active=request.active
    )
    return SpaceResponse(**space.model_dump())

@app.get("/api/branches/{branch_id}/spaces", response_model=List[SpaceResponse], tags=["Catalog"])
async def list_branch_spaces(
    branch_id: UUID,
    active: Optional[bool] = None,
    service: CatalogService = Depends(get_catalog_service)
):
    """List spaces of a branch"""
    spaces = await service.list_spaces_by_branch(branch_id, active=active)
    return [SpaceResponse(**s.model_dump()) for s in spaces]

@app.get("/api/spaces/{space_id}", response_model=SpaceResponse, tags=["Catalog"])
async def get_space(
    space_id: UUID,
    service: CatalogService = Depends(get_catalog_service)
):
    """Get space by ID"""
    space = await service.get_space(space_id)
    return SpaceResponse(**space.model_dump())

@app.patch("/api/spaces/{space_id}", response_model=SpaceResponse, tags=["Catalog"])
async def update_space(
    space_id: UUID,
    request: UpdateSpaceRequest,
    service: CatalogService = Depends(get_catalog_service)
):
    """Update space capacity, rate or status"""
    space = await service.update_space(space_id, **request.model_dump(exclude_unset=True))
    return SpaceResponse(**space.model_dump())

@app.delete("/api/spaces/{space_id}", status_code=204, tags=["Catalog"])
async def remove_space(
    space_id: UUID,
    service: CatalogService = Depends(get_catalog_service)
):
    """Remove a space without active reservations"""
    await service.remove_space(space_id)
    return Response(status_code=204)

@app.post("/api/customers", response_model=CustomerResponse, status_code=201, tags=["Catalog"])
async def create_customer(
    request: CreateCustomerRequest,
    service: CatalogService = Depends(get_catalog_service)
):
    """Create customer"""
    customer = await service.create_customer(request.name, request.email, request.phone)
    return CustomerResponse(**customer.model_dump())

@app.get("/api/customers/{customer_id}", response_model=CustomerResponse, tags=["Catalog"])
async def get_customer(
    customer_id: UUID,
    service: CatalogService = Depends(get_catalog_service)
):
    """Get customer by ID"""
    customer = await service.get_customer(customer_id)
    return CustomerResponse(**customer.model_dump())

@app.get("/api/customers", response_model=List[CustomerResponse], tags=["Catalog"])
async def list_customers(
    search: Optional[str] = None,
    service: CatalogService = Depends(get_catalog_service)
):
    """List customers, optionally matching name or email"""
    customers = await service.list_customers(search)
    return [CustomerResponse(**c.model_dump()) for c in customers]

@app.patch("/api/customers/{customer_id}", response_model=CustomerResponse, tags=["Catalog"])
async def update_customer(
    customer_id: UUID,
    request: UpdateCustomerRequest,
    service: CatalogService = Depends(get_catalog_service)
):
    """Update customer"""
    customer = await service.update_customer(customer_id, **request.model_dump(exclude_unset=True))
    return CustomerResponse(**customer.model_dump())

@app.delete("/api/customers/{customer_id}", status_code=204, tags=["Catalog"])
async def remove_customer(
    customer_id: UUID,
    service: CatalogService = Depends(get_catalog_service)
):
    """Remove a customer without active reservations"""
    await service.remove_customer(customer_id)
    return Response(status_code=204)

# ============================================================================
# RESERVATION ENDPOINTS
# ============================================================================

@app.post("/api/spaces/{space_id}/reservations", response_model=ReservationResponse, status_code=201, tags=["Reservations"])
async def create_reservation(
    space_id: UUID,
    request: CreateReservationRequest,
    service: ReservationService = Depends(get_reservation_service)
):
    """Create new reservation for a space"""
    reservation = await service.create_reservation(
        space_id=space_id,
        customer_id=request.customer_id,
        check_in_date=request.check_in_date,
        check_out_date=request.check_out_date,
        start_time=request.start_time,
        end_time=request.end_time,
        occupant_count=request.occupant_count,
        deposit_pct=request.deposit_pct,
        notes=request.notes
    )
    return _reservation_to_response(reservation)

@app.get("/api/spaces/{space_id}/reservations", response_model=List[ReservationResponse], tags=["Reservations"])
async def list_space_reservations(
    space_id: UUID,
    on_date: Optional[date] = Query(None, alias="date"),
    service: ReservationService = Depends(get_reservation_service)
):
    """List reservations of a space, optionally only those spanning a date"""
    reservations = await service.list_by_space(space_id, on_date)
    return [_reservation_to_response(r) for r in reservations]

@app.get("/api/reservations/{reservation_id}", response_model=ReservationResponse, tags=["Reservations"])
async def get_reservation(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service)
):
    """Get reservation by ID"""
    reservation = await service.get_reservation(reservation_id)
    return _reservation_to_response(reservation)

@app.patch("/api/reservations/{reservation_id}/cancel", response_model=ReservationResponse, tags=["Reservations"])
async def cancel_reservation(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service)
):
    """Cancel reservation"""
    reservation = await service.cancel_reservation(reservation_id)
    return _reservation_to_response(reservation)

# ============================================================================
# PAYMENT ENDPOINTS
# ============================================================================

@app.post("/api/reservations/{reservation_id}/payments", response_model=PaymentResponse, status_code=201, tags=["Payments"])
async def register_payment(
    reservation_id: UUID,
    request: RegisterPaymentRequest,
    service: PaymentService = Depends(get_payment_service)
):
    """Register a payment for a reservation"""
    payment = await service.register_payment(
        reservation_id=reservation_id,
        amount=request.amount,
        method=request.method,
        purpose=request.purpose,
        external_ref=request.external_ref
    )
    return _payment_to_response(payment)

@app.get("/api/reservations/{reservation_id}/payments", response_model=ReservationBalanceResponse, tags=["Payments"])
async def get_reservation_balance(
    reservation_id: UUID,
    service: PaymentService = Depends(get_payment_service),
    reservation_service: ReservationService = Depends(get_reservation_service)
):
    """Payments and remaining balance of a reservation"""
    summary, payments = await service.get_balance(reservation_id)
    reservation = await reservation_service.get_reservation(reservation_id)
    return ReservationBalanceResponse(
        reservation_id=reservation_id,
        reservation_status=reservation.status.value,
        total_amount=summary.total_amount,
        committed_amount=summary.committed_amount,
        paid_amount=summary.paid_amount,
        remaining=summary.remaining,
        payments=[_payment_to_response(p) for p in payments]
    )

@app.get("/api/payments", response_model=List[PaymentReportResponse], tags=["Payments"])
async def list_payments(
    branch_id: Optional[UUID] = None,
    space_id: Optional[UUID] = None,
    customer_id: Optional[UUID] = None,
    status: Optional[PaymentStatus] = None,
    method: Optional[PaymentMethod] = None,
    purpose: Optional[PaymentPurpose] = None,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    service: PaymentService = Depends(get_payment_service)
):
    """List payments with reservation, space, branch and customer context"""
    rows = await service.list_payments(
        branch_id=branch_id,
        space_id=space_id,
        customer_id=customer_id,
        status=status,
        method=method,
        purpose=purpose,
        from_date=from_date,
        to_date=to_date
    )
    return [_payment_row_to_response(row) for row in rows]

@app.get("/api/payments/{payment_id}", response_model=PaymentResponse, tags=["Payments"])
async def get_payment(
    payment_id: UUID,
    service: PaymentService = Depends(get_payment_service)
):
    """Get payment by ID"""
    payment = await service.get_payment(payment_id)
    return _payment_to_response(payment)

@app.post("/api/payments/{payment_id}/confirm", response_model=PaymentResponse, tags=["Payments"])
async def confirm_payment(
    payment_id: UUID,
    request: Optional[ConfirmPaymentRequest] = None,
    service: PaymentService = Depends(get_payment_service)
):
    """Confirm payment and reconcile the reservation status"""
    request = request or ConfirmPaymentRequest()
    payment = await service.confirm_payment(
        payment_id,
        external_ref=request.external_ref,
        paid_at=request.paid_at
    )
    return _payment_to_response(payment)

@app.delete("/api/payments/{payment_id}", status_code=204, tags=["Payments"])
async def remove_payment(
    payment_id: UUID,
    service: PaymentService = Depends(get_payment_service)
):
    """Remove a payment that is not PAID"""
    await service.remove_payment(payment_id)
    return Response(status_code=204)

# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def _reservation_to_response(reservation) -> ReservationResponse:
    """Convert Reservation entity to ReservationResponse"""
    return ReservationResponse(
        reservation_id=reservation.reservation_id,
        space_id=reservation.space_id,
        branch_id=reservation.branch_id,
        customer_id=reservation.customer_id,
        check_in_date=reservation.period.check_in_date,
        check_out_date=reservation.period.check_out_date,
        start_time=reservation.period.start_time,
        end_time=reservation.period.end_time,
        occupant_count=reservation.occupant_count,
        status=reservation.status.value,
        total_amount=reservation.total_amount,
        deposit_pct=reservation.deposit_pct,
        notes=reservation.notes,
        created_at=reservation.created_at,
        modified_at=reservation.modified_at,
        version=reservation.version
    )

def _payment_to_response(payment) -> PaymentResponse:
    """Convert Payment entity to PaymentResponse"""
    return PaymentResponse(
        payment_id=payment.payment_id,
        reservation_id=payment.reservation_id,
        amount=payment.amount,
        method=payment.method.value,
        purpose=payment.purpose.value,
        status=payment.status.value,
        external_ref=payment.external_ref,
        paid_at=payment.paid_at,
        created_at=payment.created_at
    )

def _payment_row_to_response(row: dict) -> PaymentReportResponse:
    """Flatten a joined payment row"""
    payment, reservation = row["payment"], row["reservation"]
    space, branch, customer = row["space"], row["branch"], row["customer"]
    return PaymentReportResponse(
        **_payment_to_response(payment).model_dump(),
        check_in_date=reservation.period.check_in_date,
        check_out_date=reservation.period.check_out_date,
        start_time=reservation.period.start_time,
        end_time=reservation.period.end_time,
        reservation_status=reservation.status.value,
        total_amount=reservation.total_amount,
        deposit_pct=reservation.deposit_pct,
        customer_id=reservation.customer_id,
        space_id=reservation.space_id,
        space_name=space.name if space else None,
        branch_id=reservation.branch_id,
        branch_name=branch.name if branch else None,
        customer_name=customer.name if customer else None,
        customer_email=customer.email if customer else None,
        customer_phone=customer.phone if customer else None
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
