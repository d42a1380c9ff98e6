"""
Tests for the scheduling engine: slot proposal, booking CRUD and the payment cache.
"""
import threading
from datetime import datetime, date, timezone
from decimal import Decimal

import pytest

from dental_clinic.auth.models import UserRole
from dental_clinic.auth.schemas import CurrentUser
from dental_clinic.appointments.exceptions import (
    ValidationError, InvalidRangeError, SlotConflictError, NotFoundError
)
from dental_clinic.appointments.models import (
    Appointment, AppointmentCategory, AppointmentStatus, PaymentStatus, PaymentMethod
)
from dental_clinic.appointments.schemas import (
    AppointmentCreate, AppointmentUpdate, LedgerEvent, PaymentInfo
)
from dental_clinic.appointments.service import (
    propose_slot,
    create_appointment,
    get_appointment,
    update_appointment,
    delete_appointment,
    query_range,
    apply_ledger_event,
    get_daily_appointment_summary,
    get_last_visit,
)
from dental_clinic.ledger.models import TransactionType


def run_concurrently(count, target):
    """Start count threads behind a barrier and collect what target returns."""
    barrier = threading.Barrier(count)
    results = [None] * count

    def worker(index):
        barrier.wait()
        results[index] = target()

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return results


def utc(hour, minute=0, day=15):
    return datetime(2025, 1, day, hour, minute, tzinfo=timezone.utc)


class TestProposeSlot:
    """Tests for propose_slot"""

    def test_returns_snapped_slot_and_duration(self, db):
        start, end, minutes = propose_slot(db, "dr-p", utc(9, 7), utc(9, 38), "UTC")
        assert start == utc(9, 5)
        assert end == utc(9, 40)
        assert minutes == 35

    def test_interprets_naive_times_in_timezone(self, db):
        start, end, minutes = propose_slot(
            db, "dr-p", datetime(2025, 1, 15, 10, 0), datetime(2025, 1, 15, 10, 30), "Asia/Dubai"
        )
        assert start == utc(6)
        assert end == utc(6, 30)
        assert minutes == 30

    def test_defaults_to_cairo(self, db):
        start, _, _ = propose_slot(db, "dr-p", datetime(2025, 1, 15, 10, 0), datetime(2025, 1, 15, 11, 0))
        assert start == utc(8)

    def test_equal_times_rejected(self, db):
        with pytest.raises(InvalidRangeError):
            propose_slot(db, "dr-p", utc(9), utc(9), "UTC")

    def test_range_collapsing_after_snap_rejected(self, db):
        # 09:01 and 09:02 both snap to 09:00
        with pytest.raises(InvalidRangeError):
            propose_slot(db, "dr-p", utc(9, 1), utc(9, 2), "UTC")

    def test_inverted_range_rejected(self, db):
        with pytest.raises(InvalidRangeError):
            propose_slot(db, "dr-p", utc(10), utc(9), "UTC")

    def test_unknown_timezone_rejected(self, db):
        with pytest.raises(ValidationError):
            propose_slot(db, "dr-p", utc(9), utc(10), "Nowhere/Special")

    def test_missing_practitioner_rejected(self, db):
        with pytest.raises(ValidationError):
            propose_slot(db, "", utc(9), utc(10), "UTC")

    def test_has_no_side_effects(self, db):
        propose_slot(db, "dr-p", utc(9), utc(10), "UTC")
        assert db.query(Appointment).count() == 0

    def test_clinic_scenario(self, db, book):
        existing = book(utc(9), utc(9, 30), practitioner_id="dr-p")

        # Back to back is fine
        assert propose_slot(db, "dr-p", utc(9, 30), utc(10), "UTC")[0] == utc(9, 30)

        with pytest.raises(SlotConflictError) as exc_info:
            propose_slot(db, "dr-p", utc(9, 15), utc(9, 45), "UTC")
        assert exc_info.value.conflicting_id == existing.id
        assert exc_info.value.start_time == utc(9)
        assert exc_info.value.end_time == utc(9, 30)

        # Another practitioner is independent
        assert propose_slot(db, "dr-q", utc(9), utc(9, 30), "UTC")[2] == 30

    def test_conflict_detected_after_snapping(self, db, book):
        book(utc(9), utc(9, 30))
        # 09:32 snaps to 09:30, touching but not overlapping
        assert propose_slot(db, "dr-p", utc(9, 32), utc(10), "UTC")[0] == utc(9, 30)
        # 09:28 snaps to 09:30 as well
        assert propose_slot(db, "dr-p", utc(9, 28), utc(10), "UTC")[0] == utc(9, 30)
        # 09:27 snaps to 09:25 and overlaps
        with pytest.raises(SlotConflictError):
            propose_slot(db, "dr-p", utc(9, 27), utc(10), "UTC")

    def test_cancelled_appointments_still_hold_their_slot(self, db, book):
        existing = book(utc(9), utc(10))
        update_appointment(db, existing.id, AppointmentUpdate(status=AppointmentStatus.CANCELLED))
        with pytest.raises(SlotConflictError):
            propose_slot(db, "dr-p", utc(9), utc(10), "UTC")

    def test_exclude_id_ignores_record(self, db, book):
        existing = book(utc(9), utc(10))
        start, _, _ = propose_slot(db, "dr-p", utc(9, 30), utc(10, 30), "UTC", exclude_id=existing.id)
        assert start == utc(9, 30)


class TestCreateAppointment:
    """Tests for create_appointment"""

    def test_creates_scheduled_appointment(self, db, book, receptionist):
        appointment = book(
            utc(9, 2), utc(9, 48),
            category=AppointmentCategory.ROOT_CANAL,
            notes="Lower left molar",
        )
        assert appointment.id is not None
        assert appointment.status == AppointmentStatus.SCHEDULED
        assert appointment.start_time == utc(9)
        assert appointment.end_time == utc(9, 50)
        assert appointment.duration_minutes == 50
        assert appointment.category == AppointmentCategory.ROOT_CANAL
        assert appointment.created_by == receptionist.id
        assert appointment.color_code == "#4287f5"
        assert appointment.payment_status == PaymentStatus.PENDING
        assert appointment.payment_amount == Decimal("0")

    def test_stores_payment_summary(self, db, book):
        appointment = book(
            utc(9), utc(10),
            payment=PaymentInfo(amount=Decimal("250"), status=PaymentStatus.PARTIAL,
                                method=PaymentMethod.INSURANCE, notes="Claim #44"),
        )
        assert appointment.payment_amount == Decimal("250")
        assert appointment.payment_status == PaymentStatus.PARTIAL
        assert appointment.payment_method == PaymentMethod.INSURANCE
        assert appointment.payment["notes"] == "Claim #44"

    def test_conflicting_booking_rejected(self, db, book):
        book(utc(9), utc(9, 30))
        with pytest.raises(SlotConflictError):
            book(utc(9, 15), utc(9, 45))
        assert db.query(Appointment).count() == 1

    def test_back_to_back_bookings_accepted(self, db, book):
        book(utc(9), utc(9, 30))
        book(utc(9, 30), utc(10))
        book(utc(8, 30), utc(9))
        assert db.query(Appointment).count() == 3

    def test_equal_start_and_end_rejected(self, db, book):
        with pytest.raises(InvalidRangeError):
            book(utc(9), utc(9))

    def test_dentist_defaults_to_own_calendar(self, db):
        dentist = CurrentUser(id="dr-self", role=UserRole.DENTIST)
        data = AppointmentCreate(
            subject_id="patient-1", start_time=utc(9), end_time=utc(10),
            timezone="UTC", category=AppointmentCategory.CLEANING,
        )
        appointment = create_appointment(db, data, dentist)
        assert appointment.practitioner_id == "dr-self"
        assert appointment.created_by == "dr-self"

    def test_receptionist_must_name_practitioner(self, db, receptionist):
        data = AppointmentCreate(
            subject_id="patient-1", start_time=utc(9), end_time=utc(10),
            timezone="UTC", category=AppointmentCategory.CLEANING,
        )
        with pytest.raises(ValidationError):
            create_appointment(db, data, receptionist)

    def test_create_then_query_round_trip(self, db, book):
        appointment = book(utc(9, 3), utc(9, 57))
        found = query_range(db, utc(9), utc(10), "UTC")
        assert len(found) == 1
        assert found[0].id == appointment.id
        assert found[0].start_time == utc(9, 5)
        assert found[0].end_time == utc(9, 55)


class TestUpdateAppointment:
    """Tests for update_appointment"""

    def test_empty_patch_changes_nothing(self, db, book):
        appointment = book(utc(9), utc(9, 45))
        updated = update_appointment(db, appointment.id, AppointmentUpdate())
        assert updated.start_time == utc(9)
        assert updated.end_time == utc(9, 45)
        assert updated.duration_minutes == 45

    def test_reschedule_snaps_and_recomputes_duration(self, db, book):
        appointment = book(utc(9), utc(9, 30))
        updated = update_appointment(
            db, appointment.id, AppointmentUpdate(start_time=utc(11, 1), end_time=utc(12, 4)), "UTC"
        )
        assert updated.start_time == utc(11)
        assert updated.end_time == utc(12, 5)
        assert updated.duration_minutes == 65

    def test_changing_only_end_keeps_start(self, db, book):
        appointment = book(utc(9), utc(9, 30))
        updated = update_appointment(db, appointment.id, AppointmentUpdate(end_time=utc(10)), "UTC")
        assert updated.start_time == utc(9)
        assert updated.end_time == utc(10)
        assert updated.duration_minutes == 60

    def test_changing_only_start_in_local_zone(self, db, book):
        appointment = book(utc(9), utc(10))
        # 10:30 in Riyadh is 07:30 UTC
        updated = update_appointment(
            db, appointment.id, AppointmentUpdate(start_time=datetime(2025, 1, 15, 10, 30)), "Asia/Riyadh"
        )
        assert updated.start_time == utc(7, 30)
        assert updated.end_time == utc(10)

    def test_moving_within_own_slot_is_not_a_conflict(self, db, book):
        appointment = book(utc(9), utc(10))
        updated = update_appointment(
            db, appointment.id, AppointmentUpdate(start_time=utc(9, 30), end_time=utc(10, 30)), "UTC"
        )
        assert updated.start_time == utc(9, 30)

    def test_reschedule_into_other_booking_rejected(self, db, book):
        first = book(utc(9), utc(10))
        second = book(utc(10), utc(11))
        with pytest.raises(SlotConflictError) as exc_info:
            update_appointment(db, second.id, AppointmentUpdate(start_time=utc(9, 30)), "UTC")
        assert exc_info.value.conflicting_id == first.id
        assert get_appointment(db, second.id).start_time == utc(10)

    def test_reschedule_to_empty_range_rejected(self, db, book):
        appointment = book(utc(9), utc(10))
        with pytest.raises(InvalidRangeError):
            update_appointment(db, appointment.id, AppointmentUpdate(end_time=utc(9)), "UTC")

    def test_status_is_free_assignment(self, db, book):
        appointment = book(utc(9), utc(10))
        for new_status in (
            AppointmentStatus.COMPLETED,
            AppointmentStatus.SCHEDULED,
            AppointmentStatus.NO_SHOW,
            AppointmentStatus.CONFIRMED,
        ):
            updated = update_appointment(db, appointment.id, AppointmentUpdate(status=new_status))
            assert updated.status == new_status

    def test_null_status_rejected(self, db, book):
        appointment = book(utc(9), utc(10))
        with pytest.raises(ValidationError):
            update_appointment(db, appointment.id, AppointmentUpdate(status=None))
        assert get_appointment(db, appointment.id).status == AppointmentStatus.SCHEDULED

    def test_cancelled_appointment_cannot_be_rescheduled(self, db, book):
        appointment = book(utc(9), utc(10))
        update_appointment(db, appointment.id, AppointmentUpdate(status=AppointmentStatus.CANCELLED))
        with pytest.raises(ValidationError):
            update_appointment(db, appointment.id, AppointmentUpdate(start_time=utc(11), end_time=utc(12)), "UTC")

    def test_cancelled_appointment_accepts_other_edits(self, db, book):
        appointment = book(utc(9), utc(10))
        update_appointment(db, appointment.id, AppointmentUpdate(status=AppointmentStatus.CANCELLED))
        updated = update_appointment(db, appointment.id, AppointmentUpdate(notes="Patient called in sick"))
        assert updated.notes == "Patient called in sick"
        assert updated.status == AppointmentStatus.CANCELLED

    def test_non_time_fields(self, db, book):
        appointment = book(utc(9), utc(10))
        updated = update_appointment(db, appointment.id, AppointmentUpdate(
            category=AppointmentCategory.CROWN,
            color_code="#ff0000",
            payment={"method": PaymentMethod.CARD, "notes": "Deposit"},
        ))
        assert updated.category == AppointmentCategory.CROWN
        assert updated.color_code == "#ff0000"
        assert updated.payment_method == PaymentMethod.CARD
        assert updated.payment_notes == "Deposit"
        assert updated.payment_status == PaymentStatus.PENDING
        assert updated.start_time == utc(9)

    def test_created_by_unchanged(self, db, book, receptionist):
        appointment = book(utc(9), utc(10))
        updated = update_appointment(db, appointment.id, AppointmentUpdate(notes="x"))
        assert updated.created_by == receptionist.id

    def test_unknown_id(self, db):
        with pytest.raises(NotFoundError):
            update_appointment(db, 999, AppointmentUpdate(notes="x"))


class TestDeleteAndQuery:
    """Tests for delete_appointment and the read operations"""

    def test_delete_frees_the_slot(self, db, book):
        appointment = book(utc(9), utc(10))
        delete_appointment(db, appointment.id)
        with pytest.raises(NotFoundError):
            get_appointment(db, appointment.id)
        assert book(utc(9), utc(10)).id is not None

    def test_delete_unknown_id(self, db):
        with pytest.raises(NotFoundError):
            delete_appointment(db, 12345)

    def test_query_range_uses_half_open_overlap(self, db, book):
        before = book(utc(8), utc(9))
        inside = book(utc(9), utc(9, 30))
        straddling = book(utc(9, 45), utc(10, 30))
        book(utc(10, 30), utc(11))

        found = query_range(db, utc(9), utc(10), "UTC")
        assert [a.id for a in found] == [inside.id, straddling.id]
        assert before.id not in [a.id for a in found]

    def test_query_range_filters_by_practitioner(self, db, book):
        mine = book(utc(9), utc(10), practitioner_id="dr-p")
        book(utc(9), utc(10), practitioner_id="dr-q")
        found = query_range(db, utc(0), utc(23), "UTC", practitioner_id="dr-p")
        assert [a.id for a in found] == [mine.id]

    def test_query_range_in_local_zone(self, db, book):
        appointment = book(utc(7), utc(8))
        # 09:00-10:00 Cairo is 07:00-08:00 UTC
        found = query_range(db, datetime(2025, 1, 15, 9), datetime(2025, 1, 15, 10), "Africa/Cairo")
        assert [a.id for a in found] == [appointment.id]

    def test_query_range_rejects_empty_window(self, db):
        with pytest.raises(ValidationError):
            query_range(db, utc(10), utc(9), "UTC")

    def test_last_visit(self, db, book):
        assert get_last_visit(db, "patient-9") is None
        book(utc(9), utc(10), subject_id="patient-9")
        book(utc(9, 0, day=20), utc(9, 30, day=20), subject_id="patient-9")
        assert get_last_visit(db, "patient-9") == utc(9, 30, day=20)

    def test_daily_summary(self, db, book):
        first = book(utc(9), utc(10))
        book(utc(11), utc(12))
        book(utc(9, 0, day=16), utc(10, 0, day=16))
        apply_ledger_event(db, first.id, LedgerEvent(amount=Decimal("300"), type=TransactionType.PAYMENT))

        summary = get_daily_appointment_summary(db, date(2025, 1, 15), "UTC")
        assert summary["total_appointments"] == 2
        assert summary["total_earnings"] == Decimal("300")
        assert summary["paid_appointments"] == 1
        assert summary["pending_payments"] == 1


class TestApplyLedgerEvent:
    """Tests for the cached payment summary"""

    def test_payment_marks_paid(self, db, book):
        appointment = book(utc(9), utc(10))
        updated = apply_ledger_event(db, appointment.id, LedgerEvent(
            amount=Decimal("150"), type=TransactionType.PAYMENT, method=PaymentMethod.CARD
        ))
        assert updated.payment_amount == Decimal("150")
        assert updated.payment_status == PaymentStatus.PAID
        assert updated.payment_method == PaymentMethod.CARD

    def test_payments_accumulate(self, db, book):
        appointment = book(utc(9), utc(10))
        for amount in ("100", "50.50"):
            apply_ledger_event(db, appointment.id, LedgerEvent(amount=Decimal(amount), type=TransactionType.PAYMENT))
        assert get_appointment(db, appointment.id).payment_amount == Decimal("150.50")

    def test_refund_clamps_at_zero(self, db, book):
        appointment = book(utc(9), utc(10))
        apply_ledger_event(db, appointment.id, LedgerEvent(amount=Decimal("100"), type=TransactionType.PAYMENT))
        updated = apply_ledger_event(db, appointment.id, LedgerEvent(amount=Decimal("250"), type=TransactionType.REFUND))
        assert updated.payment_amount == Decimal("0")
        assert updated.payment_status == PaymentStatus.PENDING

    def test_partial_refund_stays_paid(self, db, book):
        appointment = book(utc(9), utc(10))
        apply_ledger_event(db, appointment.id, LedgerEvent(amount=Decimal("100"), type=TransactionType.PAYMENT))
        updated = apply_ledger_event(db, appointment.id, LedgerEvent(amount=Decimal("40"), type=TransactionType.REFUND))
        assert updated.payment_amount == Decimal("60")
        assert updated.payment_status == PaymentStatus.PAID

    def test_adjustment_leaves_cache_alone(self, db, book):
        appointment = book(utc(9), utc(10))
        updated = apply_ledger_event(db, appointment.id, LedgerEvent(
            amount=Decimal("80"), type=TransactionType.ADJUSTMENT, method=PaymentMethod.OTHER
        ))
        assert updated.payment_amount == Decimal("0")
        assert updated.payment_status == PaymentStatus.PENDING
        assert updated.payment_method == PaymentMethod.CASH

    def test_unknown_appointment(self, db):
        with pytest.raises(NotFoundError):
            apply_ledger_event(db, 404, LedgerEvent(amount=Decimal("1"), type=TransactionType.PAYMENT))

    def test_does_not_touch_times(self, db, book):
        appointment = book(utc(9), utc(10))
        updated = apply_ledger_event(db, appointment.id, LedgerEvent(amount=Decimal("1"), type=TransactionType.PAYMENT))
        assert updated.start_time == utc(9)
        assert updated.end_time == utc(10)

    def test_concurrent_payments_are_not_lost(self, session_factory, receptionist):
        setup = session_factory()
        appointment = create_appointment(setup, AppointmentCreate(
            practitioner_id="dr-p", subject_id="patient-1",
            start_time=utc(9), end_time=utc(10), timezone="UTC",
            category=AppointmentCategory.CLEANING,
        ), receptionist)
        appointment_id = appointment.id
        setup.close()

        def pay():
            session = session_factory()
            try:
                apply_ledger_event(session, appointment_id, LedgerEvent(
                    amount=Decimal("10"), type=TransactionType.PAYMENT
                ))
                return "paid"
            finally:
                session.close()

        assert run_concurrently(8, pay) == ["paid"] * 8

        check = session_factory()
        try:
            assert get_appointment(check, appointment_id).payment_amount == Decimal("80")
        finally:
            check.close()


class TestConcurrentBooking:
    """The conflict check and the insert are serialized per practitioner"""

    def test_only_one_of_many_simultaneous_bookings_wins(self, session_factory, receptionist):
        data = AppointmentCreate(
            practitioner_id="dr-p", subject_id="patient-1",
            start_time=utc(9), end_time=utc(9, 30), timezone="UTC",
            category=AppointmentCategory.CHECKUP,
        )

        def attempt():
            session = session_factory()
            try:
                create_appointment(session, data, receptionist)
                return "booked"
            except SlotConflictError:
                return "conflict"
            finally:
                session.close()

        results = run_concurrently(8, attempt)

        assert sorted(results) == ["booked"] + ["conflict"] * 7
        check = session_factory()
        try:
            assert check.query(Appointment).filter(Appointment.practitioner_id == "dr-p").count() == 1
        finally:
            check.close()

