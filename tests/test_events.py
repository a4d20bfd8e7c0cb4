import asyncio
import unittest

from room_booking import ChangeBus, ReservationChanged, ReservationStatus, subscribe_to_changes


def make_event(reservation_id: str = "r-1") -> ReservationChanged:
    return ReservationChanged(reservation_id=reservation_id, status=ReservationStatus.APPROVED, action="approved")


class TestChangeBus(unittest.TestCase):
    def test_publish_without_subscribers_is_a_no_op(self) -> None:
        bus = ChangeBus()
        self.assertEqual(bus.publish(make_event()), 0)

    def test_every_subscriber_receives_the_event(self) -> None:
        bus = ChangeBus()
        first: list[str] = []
        second: list[str] = []
        bus.subscribe(lambda event: first.append(event.reservation_id))
        bus.subscribe(lambda event: second.append(event.action))

        self.assertEqual(bus.publish(make_event("r-9")), 2)
        self.assertEqual(first, ["r-9"])
        self.assertEqual(second, ["approved"])

    def test_unsubscribe_stops_delivery_and_is_idempotent(self) -> None:
        bus = ChangeBus()
        received: list[ReservationChanged] = []
        unsubscribe = bus.subscribe(received.append)

        bus.publish(make_event())
        unsubscribe()
        unsubscribe()
        bus.publish(make_event())

        self.assertEqual(len(received), 1)
        self.assertEqual(len(bus), 0)

    def test_failing_handler_does_not_block_others(self) -> None:
        bus = ChangeBus()
        received: list[str] = []

        def broken(event: ReservationChanged) -> None:
            raise RuntimeError("view went away")

        bus.subscribe(broken)
        bus.subscribe(lambda event: received.append(event.reservation_id))

        with self.assertLogs("room_booking.events", level="ERROR"):
            self.assertEqual(bus.publish(make_event()), 2)
        self.assertEqual(received, ["r-1"])

    def test_coroutine_handler_runs_without_a_loop(self) -> None:
        bus = ChangeBus()
        received: list[str] = []

        async def handler(event: ReservationChanged) -> None:
            await asyncio.sleep(0)
            received.append(event.reservation_id)

        bus.subscribe(handler)
        bus.publish(make_event())

        self.assertEqual(received, ["r-1"])

    def test_subscribe_to_changes_uses_given_bus(self) -> None:
        bus = ChangeBus()
        received: list[str] = []
        unsubscribe = subscribe_to_changes(lambda event: received.append(event.status), bus=bus)

        bus.publish(make_event())
        unsubscribe()

        self.assertEqual(received, ["Approved"])

    def test_event_to_dict(self) -> None:
        payload = make_event().to_dict()
        self.assertEqual(payload["status"], "Approved")
        self.assertEqual(payload["action"], "approved")


class TestChangeBusInLoop(unittest.IsolatedAsyncioTestCase):
    async def test_coroutine_handlers_are_scheduled_and_drained(self) -> None:
        bus = ChangeBus()
        received: list[str] = []

        async def handler(event: ReservationChanged) -> None:
            await asyncio.sleep(0)
            received.append(event.reservation_id)

        bus.subscribe(handler)
        bus.publish(make_event("r-2"))
        self.assertEqual(received, [])

        await bus.drain()
        self.assertEqual(received, ["r-2"])

    async def test_failing_coroutine_handler_is_logged(self) -> None:
        bus = ChangeBus()

        async def handler(event: ReservationChanged) -> None:
            raise RuntimeError("boom")

        bus.subscribe(handler)
        with self.assertLogs("room_booking.events", level="ERROR"):
            bus.publish(make_event())
            await bus.drain()

    async def test_cancelled_coroutine_handler_is_logged(self) -> None:
        bus = ChangeBus()

        async def handler(event: ReservationChanged) -> None:
            await asyncio.sleep(60)

        bus.subscribe(handler)
        bus.publish(make_event())
        await asyncio.sleep(0)
        for task in list(bus._pending):
            task.cancel()

        with self.assertLogs("room_booking.events", level="WARNING") as logs:
            await bus.drain()
        self.assertIn("cancelled", logs.output[0])

    async def test_drain_from_inside_a_handler_does_not_wait_on_itself(self) -> None:
        bus = ChangeBus()
        received: list[str] = []

        async def handler(event: ReservationChanged) -> None:
            await bus.drain()
            received.append(event.reservation_id)

        bus.subscribe(handler)
        bus.publish(make_event("r-3"))
        await asyncio.wait_for(bus.drain(), timeout=1)

        self.assertEqual(received, ["r-3"])


if __name__ == "__main__":
    unittest.main()
