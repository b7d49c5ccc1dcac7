"""Publish draw lifecycle events on a raffle-scoped channel."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Protocol

from .events import (
    BroadcastEvent,
    DrawStartPayload,
    EventPayload,
    RaffleEndedPayload,
    RaffleEventType,
    WheelSeedPayload,
    WinnerRevealedPayload,
    broadcast_channel_name,
)

logger = logging.getLogger(__name__)


class Channel(Protocol):
    def send(self, event: str, payload: Any) -> str: ...


class BroadcastTransport(Protocol):
    """Message bus seam: resolve a channel, send on it, release it."""

    def channel(self, topic: str) -> Channel: ...

    def remove_channel(self, channel: Any) -> None: ...


@dataclass(frozen=True)
class BroadcastResult:
    success: bool
    error: Optional[str] = None


class EventBroadcaster:
    """Sends :class:`BroadcastEvent` envelopes over a :class:`BroadcastTransport`.

    :meth:`publish` never raises. Every failure, including a failure to
    resolve the channel, comes back as an unsuccessful
    :class:`BroadcastResult` so a draw can continue without live viewers.
    """

    def __init__(
        self,
        transport: BroadcastTransport,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._transport = transport
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def publish(
        self,
        raffle_id: str,
        event_type: RaffleEventType,
        payload: EventPayload,
    ) -> BroadcastResult:
        """Send one event to every subscriber of ``raffle_id``'s channel.

        Parameters
        ----------
        raffle_id : str
            Raffle whose channel receives the event.
        event_type : RaffleEventType
            Event name; must match the payload variant.
        payload : EventPayload
            One of the tagged payload dataclasses.

        Returns
        -------
        BroadcastResult
            ``success=True`` when the transport acknowledged with ``"ok"``.
        """
        try:
            event_type = RaffleEventType(event_type)
        except ValueError:
            return BroadcastResult(False, f"Unknown event type: {event_type!r}")
        if getattr(payload, "event_type", None) is not event_type:
            return BroadcastResult(
                False,
                f"Payload {type(payload).__name__} does not match {event_type.value}",
            )

        envelope = BroadcastEvent(payload=payload, timestamp=self._clock())
        topic = broadcast_channel_name(raffle_id)
        logger.info(f"Sending {event_type.value} to raffle: {raffle_id}")

        channel = None
        try:
            channel = self._transport.channel(topic)
            result = channel.send(event_type.value, envelope.to_json())
            if result == "ok":
                return BroadcastResult(True)
            logger.error(f"Broadcast returned unexpected result: {result}")
            return BroadcastResult(False, f"Broadcast returned: {result}")
        except Exception as exc:
            logger.error(f"Error sending {event_type.value} to raffle {raffle_id}: {exc}")
            return BroadcastResult(False, str(exc) or "Unknown broadcast error")
        finally:
            if channel is not None:
                try:
                    self._transport.remove_channel(channel)
                except Exception as exc:
                    logger.warning(f"Failed to remove channel {topic}: {exc}")

    # -------- typed helpers --------
    def draw_started(self, raffle_id: str, prize_id: str, prize_name: str) -> BroadcastResult:
        return self.publish(
            raffle_id,
            RaffleEventType.DRAW_START,
            DrawStartPayload(raffle_id=raffle_id, prize_id=prize_id, prize_name=prize_name),
        )

    def wheel_seed(self, raffle_id: str, prize_id: str, seed: int) -> BroadcastResult:
        return self.publish(
            raffle_id,
            RaffleEventType.WHEEL_SEED,
            WheelSeedPayload(raffle_id=raffle_id, prize_id=prize_id, seed=seed),
        )

    def winner_revealed(
        self,
        raffle_id: str,
        prize_id: str,
        winner_id: str,
        winner_name: str,
        tickets_at_win: int,
        prize_name: str,
    ) -> BroadcastResult:
        return self.publish(
            raffle_id,
            RaffleEventType.WINNER_REVEALED,
            WinnerRevealedPayload(
                raffle_id=raffle_id,
                prize_id=prize_id,
                winner_id=winner_id,
                winner_name=winner_name,
                tickets_at_win=tickets_at_win,
                prize_name=prize_name,
            ),
        )

    def raffle_ended(self, raffle_id: str, total_prizes_awarded: int) -> BroadcastResult:
        return self.publish(
            raffle_id,
            RaffleEventType.RAFFLE_ENDED,
            RaffleEndedPayload(
                raffle_id=raffle_id, total_prizes_awarded=total_prizes_awarded
            ),
        )


__all__ = ["BroadcastResult", "BroadcastTransport", "EventBroadcaster"]
