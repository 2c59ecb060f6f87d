from typing import Callable

from loguru import logger

from pagichat.shared.models import InboundEnvelope, Pong


class HeartbeatResponder:
    """Answers server `ping` probes with a `pong` echoing the probe timestamp."""

    def __init__(self, send: Callable[[Pong], bool]):
        self._send = send

    def respond(self, ping: InboundEnvelope) -> bool:
        sent = self._send(Pong(ts=ping.ts))
        logger.debug(f"event=pong ts={ping.ts} sent={sent}")
        return sent
