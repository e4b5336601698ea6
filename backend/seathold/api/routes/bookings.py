"""
Checkout and booking lifecycle endpoints.
"""

from dataclasses import asdict

from fastapi import APIRouter, Depends, status

from seathold.api.deps import get_core
from seathold.container import BookingCore
from seathold.domain.models import Booking, CustomerContact
from seathold.schemas.booking import BookingResponse, CheckoutRequest

router = APIRouter(prefix="/bookings", tags=["Bookings"])


async def _to_response(core: BookingCore, booking: Booking) -> BookingResponse:
    return BookingResponse(
        id=booking.id,
        booking_number=booking.booking_number,
        schedule_id=booking.schedule_id,
        status=booking.status,
        effective_status=await core.booking_service.effective_status(booking),
        payment_status=booking.payment_status,
        seats=[asdict(seat) for seat in booking.seats],
        subtotal=booking.subtotal,
        fee=booking.fee,
        tax=booking.tax,
        discount=booking.discount,
        total_amount=booking.total_amount,
        promotion_code=booking.promotion_code,
        transaction_id=booking.transaction_id,
        customer=asdict(booking.customer),
        created_at=booking.created_at,
        updated_at=booking.updated_at,
    )


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def checkout(request: CheckoutRequest, core: BookingCore = Depends(get_core)):
    """
    Pay for a live hold and confirm the booking.

    402 if the payment is declined (the booking stays PENDING and can be
    retried while the hold lives), 409 if the hold lapsed during payment,
    403 once the show can no longer be booked.
    """
    booking = await core.booking_service.checkout(
        request.session_id,
        CustomerContact(
            name=request.customer.name,
            email=str(request.customer.email),
            phone=request.customer.phone,
        ),
        request.payment_method_id,
        promotion_code=request.promotion_code,
    )
    return await _to_response(core, booking)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(booking_id: int, core: BookingCore = Depends(get_core)):
    booking = await core.booking_service.get(booking_id)
    return await _to_response(core, booking)


@router.get("/number/{booking_number}", response_model=BookingResponse)
async def get_booking_by_number(booking_number: str, core: BookingCore = Depends(get_core)):
    booking = await core.booking_service.get_by_number(booking_number)
    return await _to_response(core, booking)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(booking_id: int, core: BookingCore = Depends(get_core)):
    """Cancel a confirmed booking; only allowed more than 24 hours before the show."""
    booking = await core.booking_service.cancel(booking_id)
    return await _to_response(core, booking)


@router.post("/{booking_id}/refund-request", response_model=BookingResponse)
async def request_refund(booking_id: int, core: BookingCore = Depends(get_core)):
    """Ask for a refund once the show date has passed."""
    booking = await core.booking_service.request_refund(booking_id)
    return await _to_response(core, booking)


@router.post("/{booking_id}/refund-approval", response_model=BookingResponse)
async def approve_refund(booking_id: int, core: BookingCore = Depends(get_core)):
    booking = await core.booking_service.approve_refund(booking_id)
    return await _to_response(core, booking)
