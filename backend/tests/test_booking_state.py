"""
Tests for checkout and the booking state machine.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from seathold.domain.errors import (
    BookingWindowClosed,
    InvalidTransition,
    PaymentDeclined,
    PromotionInvalid,
    SeatNoLongerHeld,
    SessionExpired,
)
from seathold.domain.models import BookingStatus, PaymentStatus, SeatStatus
from seathold.services.booking_service import ALLOWED_TRANSITIONS, can_transition, transition

from conftest import CONCERT_ID, CUSTOMER, MOVIE_ID, NOW, SHOW_START


async def hold_and_buy(core, seat_ids=("A1", "A2"), schedule_id=MOVIE_ID, promotion_code=None):
    session = await core.reservations.reserve(schedule_id, list(seat_ids))
    booking = await core.booking_service.checkout(session.session_id, CUSTOMER, "pm_card", promotion_code)
    return session, booking


async def statuses(core, schedule_id, seat_ids):
    return [(await core.seat_store.get_seat(schedule_id, s)).status for s in seat_ids]


# ============== Transition table ==============

@pytest.mark.parametrize(
    "current,target",
    [
        (BookingStatus.PENDING, BookingStatus.CONFIRMED),
        (BookingStatus.PENDING, BookingStatus.EXPIRED),
        (BookingStatus.CONFIRMED, BookingStatus.CANCELLED),
        (BookingStatus.CONFIRMED, BookingStatus.REFUND_REQUESTED),
        (BookingStatus.CONFIRMED, BookingStatus.COMPLETED),
        (BookingStatus.REFUND_REQUESTED, BookingStatus.REFUNDED),
    ],
)
def test_allowed_transitions(current, target):
    assert can_transition(current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        (BookingStatus.PENDING, BookingStatus.CANCELLED),
        (BookingStatus.EXPIRED, BookingStatus.CONFIRMED),
        (BookingStatus.CANCELLED, BookingStatus.CONFIRMED),
        (BookingStatus.REFUNDED, BookingStatus.REFUND_REQUESTED),
        (BookingStatus.COMPLETED, BookingStatus.CANCELLED),
        (BookingStatus.CONFIRMED, BookingStatus.PENDING),
    ],
)
def test_rejected_transitions(current, target):
    assert not can_transition(current, target)


def test_terminal_states_have_no_exits():
    for status in (BookingStatus.CANCELLED, BookingStatus.EXPIRED, BookingStatus.REFUNDED, BookingStatus.COMPLETED):
        assert status not in ALLOWED_TRANSITIONS


@pytest.mark.asyncio
async def test_transition_raises_with_states(core):
    _, booking = await hold_and_buy(core)

    with pytest.raises(InvalidTransition) as exc_info:
        transition(booking, BookingStatus.EXPIRED, NOW)

    assert exc_info.value.from_status == "CONFIRMED"
    assert exc_info.value.to_status == "EXPIRED"


# ============== Checkout ==============

@pytest.mark.asyncio
async def test_checkout_confirms_booking_and_sells_seats(core, payments, sink):
    session, booking = await hold_and_buy(core)

    assert booking.booking_number == "BK00001"
    assert booking.status == BookingStatus.CONFIRMED
    assert booking.payment_status == PaymentStatus.COMPLETED
    assert booking.transaction_id == "txn_1_1"
    assert booking.seat_ids == ["A1", "A2"]
    assert booking.subtotal == Decimal("750")
    assert booking.total_amount == Decimal("923")
    assert payments.captures == [(1, "pm_card", Decimal("923"))]

    assert await statuses(core, MOVIE_ID, ["A1", "A2"]) == [SeatStatus.SOLD, SeatStatus.SOLD]
    assert core.reservations.peek_session(session.session_id) is None
    assert (await core.schedules.get_schedule(MOVIE_ID)).sold_seats == 2

    [notice] = sink.of_type("booking_status_changed")
    assert notice["to_status"] == "CONFIRMED"
    assert notice["booking_number"] == "BK00001"


@pytest.mark.asyncio
async def test_checkout_with_promotion(core, payments):
    _, booking = await hold_and_buy(core, promotion_code="FLAT600")

    assert booking.discount == Decimal("600")
    assert booking.total_amount == Decimal("323")
    assert booking.promotion_code == "FLAT600"
    assert payments.captures[0][2] == Decimal("323")
    assert (await core.promotions.validate("FLAT600")).current_uses == 1


@pytest.mark.asyncio
async def test_fully_discounted_checkout_skips_capture(core, payments):
    _, booking = await hold_and_buy(core, promotion_code="FLAT1000")

    assert booking.total_amount == 0
    assert booking.status == BookingStatus.CONFIRMED
    assert payments.captures == []


@pytest.mark.asyncio
async def test_invalid_promotion_blocks_checkout(core, payments):
    session = await core.reservations.reserve(MOVIE_ID, ["A1"])

    with pytest.raises(PromotionInvalid):
        await core.booking_service.checkout(session.session_id, CUSTOMER, "pm_card", "NOPE")

    assert payments.captures == []
    assert await core.booking_service.list_for_schedule(MOVIE_ID) == []
    assert await statuses(core, MOVIE_ID, ["A1"]) == [SeatStatus.RESERVED]


@pytest.mark.asyncio
async def test_checkout_unknown_session(core):
    with pytest.raises(SessionExpired):
        await core.booking_service.checkout("nope", CUSTOMER, "pm_card")


@pytest.mark.asyncio
async def test_checkout_after_hold_lapsed(core, clock):
    session = await core.reservations.reserve(MOVIE_ID, ["A1"])
    clock.advance(minutes=5)

    with pytest.raises(SessionExpired):
        await core.booking_service.checkout(session.session_id, CUSTOMER, "pm_card")


@pytest.mark.asyncio
async def test_declined_payment_keeps_booking_pending(core, payments, sink):
    payments.decline = True
    session = await core.reservations.reserve(MOVIE_ID, ["A1", "A2"])

    with pytest.raises(PaymentDeclined):
        await core.booking_service.checkout(session.session_id, CUSTOMER, "pm_card")

    booking = await core.booking_service.get(1)
    assert booking.status == BookingStatus.PENDING
    assert booking.payment_status == PaymentStatus.FAILED
    assert await statuses(core, MOVIE_ID, ["A1", "A2"]) == [SeatStatus.RESERVED, SeatStatus.RESERVED]
    assert sink.of_type("payment_failed")[0]["booking_id"] == 1

    payments.decline = False
    retried = await core.booking_service.checkout(session.session_id, CUSTOMER, "pm_card")

    assert retried.id == 1
    assert retried.status == BookingStatus.CONFIRMED
    assert len(payments.captures) == 2


@pytest.mark.asyncio
async def test_retry_after_deselect_starts_new_booking(core, payments):
    payments.decline = True
    session = await core.reservations.reserve(MOVIE_ID, ["A1", "A2"])
    with pytest.raises(PaymentDeclined):
        await core.booking_service.checkout(session.session_id, CUSTOMER, "pm_card")

    await core.reservations.release_seats(session.session_id, ["A2"])
    payments.decline = False
    booking = await core.booking_service.checkout(session.session_id, CUSTOMER, "pm_card")

    assert booking.id == 2
    assert booking.seat_ids == ["A1"]
    assert (await core.booking_service.get(1)).status == BookingStatus.EXPIRED


@pytest.mark.asyncio
async def test_pending_booking_expires_with_hold(core, clock, payments):
    payments.decline = True
    session = await core.reservations.reserve(MOVIE_ID, ["A1"])
    with pytest.raises(PaymentDeclined):
        await core.booking_service.checkout(session.session_id, CUSTOMER, "pm_card")

    clock.advance(minutes=5)
    await core.reservations.expire_due()

    assert (await core.booking_service.get(1)).status == BookingStatus.EXPIRED


async def declined_checkout(core, payments, seat_ids=("A1", "A2")):
    payments.decline = True
    session = await core.reservations.reserve(MOVIE_ID, list(seat_ids))
    with pytest.raises(PaymentDeclined):
        await core.booking_service.checkout(session.session_id, CUSTOMER, "pm_card")
    payments.decline = False
    return session


@pytest.mark.asyncio
async def test_pending_booking_expires_on_release(core, payments):
    session = await declined_checkout(core, payments)

    await core.reservations.release(session.session_id)

    booking = await core.booking_service.get(1)
    assert booking.status == BookingStatus.EXPIRED
    assert booking.payment_status == PaymentStatus.FAILED
    assert await statuses(core, MOVIE_ID, ["A1", "A2"]) == [SeatStatus.AVAILABLE, SeatStatus.AVAILABLE]


@pytest.mark.asyncio
async def test_pending_booking_expires_when_last_seat_deselected(core, payments):
    session = await declined_checkout(core, payments, seat_ids=("A1",))

    assert await core.reservations.release_seats(session.session_id, ["A1"]) is None

    assert (await core.booking_service.get(1)).status == BookingStatus.EXPIRED


@pytest.mark.asyncio
async def test_pending_booking_expires_on_extend(core, payments):
    session = await declined_checkout(core, payments)

    changed = await core.reservations.extend(session.session_id, ["A1"])
    booking = await core.booking_service.checkout(changed.session_id, CUSTOMER, "pm_card")

    assert (await core.booking_service.get(1)).status == BookingStatus.EXPIRED
    assert booking.id == 2
    assert booking.status == BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_pending_booking_expires_when_hold_is_replaced(core, payments):
    session = await declined_checkout(core, payments)

    replacement = await core.reservations.reserve(MOVIE_ID, ["A2"], existing_session_id=session.session_id)

    assert (await core.booking_service.get(1)).status == BookingStatus.EXPIRED
    assert await statuses(core, MOVIE_ID, ["A1", "A2"]) == [SeatStatus.AVAILABLE, SeatStatus.RESERVED]
    assert core.reservations.peek_session(replacement.session_id) is not None

@pytest.mark.asyncio
async def test_hold_lapsing_during_capture_expires_booking(core, clock, payments):
    """The shopper paid, but the hold ran out while the bank was answering."""

    async def slow_bank():
        clock.advance(minutes=6)

    payments.during_capture = slow_bank
    session = await core.reservations.reserve(MOVIE_ID, ["A1", "A2"])

    with pytest.raises(SeatNoLongerHeld):
        await core.booking_service.checkout(session.session_id, CUSTOMER, "pm_card")

    booking = await core.booking_service.get(1)
    assert booking.status == BookingStatus.EXPIRED
    assert booking.payment_status == PaymentStatus.REFUND_PENDING
    assert booking.transaction_id == "txn_1_1"
    assert await statuses(core, MOVIE_ID, ["A1", "A2"]) == [SeatStatus.AVAILABLE, SeatStatus.AVAILABLE]
    assert (await core.schedules.get_schedule(MOVIE_ID)).sold_seats == 0


@pytest.mark.asyncio
async def test_seat_taken_during_capture_is_not_confirmed(core, payments):
    session = await core.reservations.reserve(MOVIE_ID, ["A1", "A2"])

    async def lose_seat():
        await core.seat_store.set_seat_status(MOVIE_ID, "A2", SeatStatus.SOLD)

    payments.during_capture = lose_seat

    with pytest.raises(SeatNoLongerHeld) as exc_info:
        await core.booking_service.checkout(session.session_id, CUSTOMER, "pm_card")

    assert exc_info.value.seat_ids == ["A2"]
    booking = await core.booking_service.get(1)
    assert booking.status == BookingStatus.EXPIRED
    assert booking.payment_status == PaymentStatus.REFUND_PENDING


@pytest.mark.asyncio
async def test_movie_checkout_within_grace_period(core, clock):
    clock.set(SHOW_START + timedelta(minutes=10))

    _, booking = await hold_and_buy(core, ["A1"])

    assert booking.status == BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_checkout_after_window_closed(core, clock, payments):
    clock.set(SHOW_START + timedelta(minutes=1))
    session = await core.reservations.reserve(CONCERT_ID, ["C1"])

    with pytest.raises(BookingWindowClosed):
        await core.booking_service.checkout(session.session_id, CUSTOMER, "pm_card")

    assert payments.captures == []


# ============== After purchase ==============

@pytest.mark.asyncio
async def test_cancel_well_before_show(core, sink):
    _, booking = await hold_and_buy(core)

    cancelled = await core.booking_service.cancel(booking.id)

    assert cancelled.status == BookingStatus.CANCELLED
    assert cancelled.payment_status == PaymentStatus.REFUND_PENDING
    assert await statuses(core, MOVIE_ID, ["A1", "A2"]) == [SeatStatus.AVAILABLE, SeatStatus.AVAILABLE]
    assert (await core.schedules.get_schedule(MOVIE_ID)).sold_seats == 0
    assert sink.of_type("booking_status_changed")[-1]["to_status"] == "CANCELLED"


@pytest.mark.asyncio
async def test_cancel_inside_cutoff_rejected(core, clock):
    _, booking = await hold_and_buy(core)
    clock.set(SHOW_START - timedelta(hours=23))

    with pytest.raises(InvalidTransition) as exc_info:
        await core.booking_service.cancel(booking.id)

    assert "24 hours" in exc_info.value.message
    assert (await core.booking_service.get(booking.id)).status == BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_cancel_after_show_started_rejected(core, clock):
    _, booking = await hold_and_buy(core)
    clock.set(SHOW_START + timedelta(hours=1))

    with pytest.raises(InvalidTransition) as exc_info:
        await core.booking_service.cancel(booking.id)

    assert exc_info.value.from_status == "COMPLETED"


@pytest.mark.asyncio
async def test_cancel_twice_rejected(core):
    _, booking = await hold_and_buy(core)
    await core.booking_service.cancel(booking.id)

    with pytest.raises(InvalidTransition):
        await core.booking_service.cancel(booking.id)


@pytest.mark.asyncio
async def test_refund_only_after_show(core, clock):
    _, booking = await hold_and_buy(core)

    with pytest.raises(InvalidTransition):
        await core.booking_service.request_refund(booking.id)

    clock.set(SHOW_START + timedelta(days=1))
    requested = await core.booking_service.request_refund(booking.id)
    assert requested.status == BookingStatus.REFUND_REQUESTED

    refunded = await core.booking_service.approve_refund(booking.id)
    assert refunded.status == BookingStatus.REFUNDED
    assert refunded.payment_status == PaymentStatus.REFUNDED
    assert await statuses(core, MOVIE_ID, ["A1", "A2"]) == [SeatStatus.AVAILABLE, SeatStatus.AVAILABLE]


@pytest.mark.asyncio
async def test_approve_without_request_rejected(core):
    _, booking = await hold_and_buy(core)

    with pytest.raises(InvalidTransition):
        await core.booking_service.approve_refund(booking.id)


@pytest.mark.asyncio
async def test_confirmed_reads_completed_after_show(core, clock):
    _, booking = await hold_and_buy(core)
    assert await core.booking_service.effective_status(booking) == BookingStatus.CONFIRMED

    with pytest.raises(InvalidTransition):
        await core.booking_service.complete(booking.id)

    clock.set(SHOW_START)
    assert await core.booking_service.effective_status(booking) == BookingStatus.COMPLETED

    completed = await core.booking_service.complete(booking.id)
    assert completed.status == BookingStatus.COMPLETED


@pytest.mark.asyncio
async def test_lookup_by_number(core):
    _, booking = await hold_and_buy(core)

    found = await core.booking_service.get_by_number("BK00001")

    assert found.id == booking.id
    assert found.customer == CUSTOMER
