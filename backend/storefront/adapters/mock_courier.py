import time
from uuid import uuid4
from typing import Dict


class CourierError(Exception):
    pass


class MockCourierAdapter:
    """
    Stand-in for a shipping carrier. book_shipment returns a dict
    {courier, tracking_number, status}; tracking numbers look like TRK-XXXXXXXXXXXX.
    """

    def __init__(self, delay_ms: int = 0):
        self.delay = delay_ms / 1000.0

    def book_shipment(self, order_number: str) -> Dict:
        if not order_number:
            raise CourierError("order number required to book a shipment")
        if self.delay:
            time.sleep(self.delay)
        tracking = f"TRK-{uuid4().hex[:12].upper()}"
        return {
            "courier": "mock-courier",
            "order_number": order_number,
            "tracking_number": tracking,
            "status": "booked",
        }
