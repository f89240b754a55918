# tests/mock_radio.py
import heapq
import itertools

from camstatus.models import Advertisement


class FakeTimerHandle:
    def __init__(self, when, callback, args):
        self.when = when
        self.callback = callback
        self.args = args
        self._cancelled = False

    def cancel(self):
        self._cancelled = True

    def cancelled(self):
        return self._cancelled


class FakeLoop:
    """The call_later/time subset of an asyncio loop, driven by advance()."""

    def __init__(self):
        self.now = 0.0
        self._queue = []
        self._counter = itertools.count()

    def time(self):
        return self.now

    def call_later(self, delay, callback, *args):
        handle = FakeTimerHandle(self.now + delay, callback, args)
        heapq.heappush(self._queue, (handle.when, next(self._counter), handle))
        return handle

    @property
    def pending(self):
        return [handle for _, _, handle in self._queue if not handle.cancelled()]

    def advance(self, seconds):
        """Runs every callback due within `seconds`, including ones scheduled meanwhile."""
        target = self.now + seconds
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            when, _, handle = heapq.heappop(self._queue)
            self.now = when
            if handle.cancelled():
                continue
            # a fired handle can no longer be cancelled
            handle._cancelled = True
            handle.callback(*handle.args)
            fired += 1
        self.now = target
        return fired


class FakeRadio:
    """Records every outbound request made by the code under test."""

    def __init__(self):
        self.delegate = None
        self.calls = []

    def start_scan(self):
        self.calls.append(("start_scan",))

    def stop_scan(self):
        self.calls.append(("stop_scan",))

    def connect(self, peripheral_id):
        self.calls.append(("connect", peripheral_id))

    def cancel_connection(self, peripheral_id):
        self.calls.append(("cancel_connection", peripheral_id))

    def discover_services(self, peripheral_id):
        self.calls.append(("discover_services", peripheral_id))

    def discover_characteristics(self, peripheral_id, service_uuid):
        self.calls.append(("discover_characteristics", peripheral_id, service_uuid))

    def write(self, peripheral_id, characteristic_uuid, payload, response=True):
        self.calls.append(("write", peripheral_id, characteristic_uuid, bytes(payload), response))

    def names(self):
        return [call[0] for call in self.calls]

    def count(self, name):
        return self.names().count(name)

    def writes(self):
        return [call for call in self.calls if call[0] == "write"]

    def reset(self):
        self.calls.clear()


EM5_ID = "C6:1E:0D:E0:32:E8"
EM5_NAME = "E-M5MKIII-P-BJ8A15412"
RICOH_ID = "10763D9D-22B1-A168-8B62-2CA083E3BE4F"
RICOH_NAME = "GR_5A9E88"


def em5_advertisement(rssi=-60, peripheral_id=EM5_ID, name=EM5_NAME):
    return Advertisement(peripheral_id=peripheral_id, name=name, rssi=rssi)


def ricoh_advertisement(rssi=-70, peripheral_id=RICOH_ID, name=RICOH_NAME):
    return Advertisement(peripheral_id=peripheral_id, name=name, rssi=rssi)
