import unittest
from dataclasses import replace
from datetime import date, datetime, time

from room_booking import (
    Actor,
    ActorRole,
    AuthorizationError,
    DetailsPatch,
    IllegalStateError,
    ParseError,
    Reservation,
    ReservationCommand,
    ReservationStatus,
    ScheduleSlot,
    Settings,
    ValidationError,
    allowed_targets,
    resolve_transition,
)
from room_booking.lifecycle import FINAL_STATUSES, check_booking_day, validate_command, validate_patch

TODAY = date(2025, 11, 17)
ADMIN = Actor("admin-1", ActorRole.ADMIN)
OWNER = Actor("student-1", ActorRole.STUDENT)
STRANGER = Actor("student-2", ActorRole.STUDENT)


def make_reservation(status: ReservationStatus = ReservationStatus.PENDING, user_role: str = ActorRole.STUDENT) -> Reservation:
    stamp = datetime(2025, 11, 17, 9, 0)
    return Reservation(
        id="r-1",
        reservation_code="RES-20251117-0001",
        user_id=OWNER.user_id,
        user_role=user_role,
        room_ids=(5,),
        purpose="Research-Related",
        remarks="Lab work",
        advisor="Dr. Reyes",
        status=status,
        schedules=(ScheduleSlot.build(date(2025, 11, 20), "09:00", "10:00"),),
        created_at=stamp,
        updated_at=stamp,
    )


def make_command(**overrides: object) -> ReservationCommand:
    command = ReservationCommand(
        requester_id=OWNER.user_id,
        requester_role=ActorRole.STUDENT,
        room_ids=(5,),
        purpose="Research-Related",
        dates=(date(2025, 11, 20),),
        start_time="09:00",
        end_time="10:00",
        remarks="Thesis testing",
        advisor="Dr. Reyes",
    )
    return replace(command, **overrides)


class TestTransitions(unittest.TestCase):
    def test_admin_decides_pending_reservations(self) -> None:
        reservation = make_reservation()
        self.assertEqual(resolve_transition(reservation, ReservationStatus.APPROVED, ADMIN).action, "approved")
        self.assertEqual(resolve_transition(reservation, ReservationStatus.DENIED, ADMIN).action, "denied")

    def test_requester_cancels_and_closes(self) -> None:
        self.assertEqual(resolve_transition(make_reservation(), ReservationStatus.CANCELLED, OWNER).action, "cancelled")
        approved = make_reservation(ReservationStatus.APPROVED)
        self.assertEqual(resolve_transition(approved, ReservationStatus.CLOSED, OWNER).action, "closed")

    def test_wrong_actor_is_not_authorized(self) -> None:
        reservation = make_reservation()
        with self.assertRaises(AuthorizationError):
            resolve_transition(reservation, ReservationStatus.APPROVED, OWNER)
        with self.assertRaises(AuthorizationError):
            resolve_transition(reservation, ReservationStatus.DENIED, STRANGER)
        with self.assertRaises(AuthorizationError):
            resolve_transition(reservation, ReservationStatus.CANCELLED, STRANGER)
        with self.assertRaises(AuthorizationError):
            resolve_transition(reservation, ReservationStatus.CANCELLED, ADMIN)

    def test_no_transition_leaves_a_final_status(self) -> None:
        self.assertEqual(
            FINAL_STATUSES,
            {ReservationStatus.DENIED, ReservationStatus.CANCELLED, ReservationStatus.CLOSED},
        )
        for source in FINAL_STATUSES:
            for target in ReservationStatus:
                for actor in (ADMIN, OWNER):
                    with self.subTest(source=source, target=target, actor=actor.role):
                        with self.assertRaises(IllegalStateError):
                            resolve_transition(make_reservation(source), target, actor)

    def test_approved_only_moves_to_closed(self) -> None:
        self.assertEqual(allowed_targets(ReservationStatus.APPROVED), [ReservationStatus.CLOSED])
        with self.assertRaises(IllegalStateError):
            resolve_transition(make_reservation(ReservationStatus.APPROVED), ReservationStatus.APPROVED, ADMIN)
        with self.assertRaises(IllegalStateError):
            resolve_transition(make_reservation(ReservationStatus.APPROVED), ReservationStatus.CANCELLED, OWNER)


class TestValidateCommand(unittest.TestCase):
    def setUp(self) -> None:
        self.settings = Settings()

    def test_valid_command_produces_one_slot_per_date(self) -> None:
        command = make_command(
            dates=(date(2025, 11, 21), date(2025, 11, 20), date(2025, 11, 21)),
            start_time="9:00 AM",
            end_time="10:30 AM",
            participants=("Ana", "  ", "", "Ben "),
            equipments=("laptop", "Laptop", "Oscilloscope", " "),
        )
        request = validate_command(command, self.settings, TODAY)

        self.assertEqual([slot.date for slot in request.slots], [date(2025, 11, 20), date(2025, 11, 21)])
        self.assertTrue(all(slot.start_time == time(9, 0) and slot.end_time == time(10, 30) for slot in request.slots))
        self.assertEqual(request.participants, ("Ana", "Ben"))
        self.assertEqual(request.equipments, ("Laptop", "Oscilloscope"))

    def test_missing_fields_are_named(self) -> None:
        cases = {
            "room_ids": {"room_ids": ()},
            "purpose": {"purpose": None},
            "dates": {"dates": ()},
            "start_time": {"start_time": ""},
            "end_time": {"end_time": None},
            "remarks": {"remarks": "   "},
        }
        for field, overrides in cases.items():
            with self.subTest(field=field):
                with self.assertRaises(ValidationError) as context:
                    validate_command(make_command(**overrides), self.settings, TODAY)
                self.assertEqual(context.exception.field, field)

    def test_advisor_required_unless_instructor(self) -> None:
        with self.assertRaises(ValidationError) as context:
            validate_command(make_command(advisor=None), self.settings, TODAY)
        self.assertEqual(context.exception.field, "advisor")

        request = validate_command(make_command(advisor=None, requester_role=ActorRole.INSTRUCTOR), self.settings, TODAY)
        self.assertIsNone(request.advisor)

    def test_missing_fields_reported_before_time_errors(self) -> None:
        with self.assertRaises(ValidationError) as context:
            validate_command(make_command(remarks=None, start_time="11:00", end_time="10:00"), self.settings, TODAY)
        self.assertEqual(context.exception.field, "remarks")

    def test_remarks_limited_to_30_characters(self) -> None:
        validate_command(make_command(remarks="x" * 30), self.settings, TODAY)
        with self.assertRaises(ValidationError) as context:
            validate_command(make_command(remarks="x" * 31), self.settings, TODAY)
        self.assertEqual(context.exception.field, "remarks")

    def test_unknown_purpose_is_rejected(self) -> None:
        with self.assertRaises(ValidationError) as context:
            validate_command(make_command(purpose="Party"), self.settings, TODAY)
        self.assertEqual(context.exception.field, "purpose")

    def test_non_positive_duration_is_rejected(self) -> None:
        for start, end in [("10:00", "10:00"), ("11:00", "10:00")]:
            with self.subTest(start=start, end=end):
                with self.assertRaises(ValidationError):
                    validate_command(make_command(start_time=start, end_time=end), self.settings, TODAY)

    def test_operating_hours_are_enforced(self) -> None:
        validate_command(make_command(start_time="07:30", end_time="09:30"), self.settings, TODAY)
        validate_command(make_command(start_time="15:30", end_time="17:30"), self.settings, TODAY)
        for start, end in [("07:00", "08:00"), ("17:00", "18:00")]:
            with self.subTest(start=start, end=end):
                with self.assertRaises(ValidationError):
                    validate_command(make_command(start_time=start, end_time=end), self.settings, TODAY)

    def test_times_must_sit_on_half_hour_steps(self) -> None:
        cases = [("09:07", "09:11", "start_time"), ("09:00", "10:15", "end_time"), ("9:45 AM", "10:45 AM", "start_time")]
        for start, end, field in cases:
            with self.subTest(start=start, end=end):
                with self.assertRaises(ValidationError) as context:
                    validate_command(make_command(start_time=start, end_time=end), self.settings, TODAY)
                self.assertEqual(context.exception.field, field)

    def test_duration_between_one_and_two_hours(self) -> None:
        for end in ["10:00", "10:30", "11:00"]:
            with self.subTest(end=end):
                validate_command(make_command(start_time="09:00", end_time=end), self.settings, TODAY)
        for end in ["09:30", "11:30"]:
            with self.subTest(end=end):
                with self.assertRaises(ValidationError) as context:
                    validate_command(make_command(start_time="09:00", end_time=end), self.settings, TODAY)
                self.assertEqual(context.exception.field, "end_time")

    def test_duration_bounds_can_be_disabled(self) -> None:
        settings = Settings(min_duration_hours=None, max_duration_hours=None)
        request = validate_command(make_command(start_time="07:30", end_time="17:30"), settings, TODAY)
        self.assertEqual(request.slots[0].end_time, time(17, 30))
        validate_command(make_command(start_time="09:00", end_time="09:30"), settings, TODAY)

    def test_malformed_time_raises_parse_error(self) -> None:
        with self.assertRaises(ParseError):
            validate_command(make_command(start_time="nine"), self.settings, TODAY)


class TestBookingDay(unittest.TestCase):
    def test_past_far_future_and_sunday_are_rejected(self) -> None:
        settings = Settings()
        check_booking_day(date(2025, 11, 17), settings, TODAY)
        check_booking_day(date(2025, 12, 17), settings, TODAY)
        for day in [date(2025, 11, 16), date(2025, 12, 18), date(2025, 11, 23)]:
            with self.subTest(day=day):
                with self.assertRaises(ValidationError):
                    check_booking_day(day, settings, TODAY)

    def test_window_can_be_disabled(self) -> None:
        check_booking_day(date(2026, 6, 1), Settings(reservation_window_days=None), TODAY)

    def test_public_holidays_are_closed_when_country_configured(self) -> None:
        settings = Settings(holiday_country="PH", reservation_window_days=None)
        with self.assertRaises(ValidationError):
            check_booking_day(date(2025, 12, 25), settings, TODAY)
        check_booking_day(date(2025, 12, 25), Settings(reservation_window_days=None), TODAY)


class TestValidatePatch(unittest.TestCase):
    def test_patch_fields_are_cleaned(self) -> None:
        patch = validate_patch(
            make_reservation(),
            DetailsPatch(remarks=" New remarks ", participants=("A", ""), equipments=("projector",)),
        )
        self.assertEqual(patch.remarks, "New remarks")
        self.assertEqual(patch.participants, ("A",))
        self.assertEqual(patch.equipments, ("Projector",))
        self.assertIsNone(patch.purpose)

    def test_empty_patch_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            validate_patch(make_reservation(), DetailsPatch())

    def test_student_cannot_clear_advisor(self) -> None:
        with self.assertRaises(ValidationError) as context:
            validate_patch(make_reservation(), DetailsPatch(advisor=""))
        self.assertEqual(context.exception.field, "advisor")

        cleared = validate_patch(make_reservation(user_role=ActorRole.INSTRUCTOR), DetailsPatch(advisor=""))
        self.assertEqual(cleared.advisor, "")


if __name__ == "__main__":
    unittest.main()
