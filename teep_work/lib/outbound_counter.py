"""Counts signed messages handed to a transport; only ever goes up."""
import threading


class OutboundCounter:

    def __init__(self):
        self._value = 0
        self._lock = threading.Lock()

    def increment(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    @property
    def value(self) -> int:
        return self._value


# Shared by every broker that is not handed its own counter.
OUTBOUND_MESSAGES = OutboundCounter()


def get_outbound_messages_sent() -> int:
    return OUTBOUND_MESSAGES.value
