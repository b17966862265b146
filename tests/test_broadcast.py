import asyncio
import unittest

from stocksense.services.broadcast_service import InventoryBroadcaster


class InventoryBroadcasterTest(unittest.TestCase):
    def test_every_subscriber_gets_the_message(self):
        broadcaster = InventoryBroadcaster(queue_size=5)
        first = broadcaster.subscribe(name="a")
        second = broadcaster.subscribe(name="b")

        delivered = broadcaster.publish("product-updated", {"cardData": {"id": "1"}})

        self.assertEqual(delivered, 2)
        expected = {"event": "product-updated", "data": {"cardData": {"id": "1"}}}
        self.assertEqual(first.drain(), [expected])
        self.assertEqual(second.drain(), [expected])

    def test_full_subscriber_drops_without_blocking_others(self):
        broadcaster = InventoryBroadcaster(queue_size=2)
        slow = broadcaster.subscribe(name="slow")
        fast = broadcaster.subscribe(name="fast")

        with self.assertLogs("stocksense.services.broadcast_service", level="WARNING"):
            for index in range(3):
                broadcaster.publish("product-updated", {"n": index})
                fast.drain()

        self.assertEqual([m["data"]["n"] for m in slow.drain()], [0, 1])
        self.assertEqual(slow.dropped, 1)
        self.assertEqual(fast.dropped, 0)

    def test_listener_errors_are_swallowed(self):
        broadcaster = InventoryBroadcaster()
        seen = []

        def broken(event, payload):
            raise RuntimeError("listener down")

        broadcaster.add_listener(broken)
        broadcaster.add_listener(lambda event, payload: seen.append(event))

        with self.assertLogs("stocksense.services.broadcast_service", level="ERROR"):
            delivered = broadcaster.publish("rfid-tag-detected", {"rfid_tag": "A1"})

        self.assertEqual(delivered, 1)
        self.assertEqual(seen, ["rfid-tag-detected"])

    def test_unsubscribe_stops_delivery(self):
        broadcaster = InventoryBroadcaster()
        subscription = broadcaster.subscribe()
        broadcaster.unsubscribe(subscription)
        self.assertEqual(broadcaster.subscriber_count, 0)
        self.assertEqual(broadcaster.publish("product-updated", {}), 0)
        self.assertEqual(subscription.drain(), [])

    def test_async_subscription_wakes_up(self):
        async def scenario():
            broadcaster = InventoryBroadcaster()
            subscription = broadcaster.subscribe_async(asyncio.get_running_loop(), name="ws")
            waiter = asyncio.ensure_future(subscription.next_message())
            await asyncio.sleep(0)
            broadcaster.publish("product-updated", {"id": "9"})
            return await asyncio.wait_for(waiter, timeout=2)

        message = asyncio.run(scenario())
        self.assertEqual(message["data"], {"id": "9"})


if __name__ == "__main__":
    unittest.main()
