"""
Peer Channel
============
Direct channel between terminals carrying ledger events and presence
(peer-joined / peer-left). Presence is advisory only: nothing in the
ledgers waits on it.

Connection lifecycle:
1. connect() starts a supervisor thread that opens the transport
2. The supervisor long-polls the transport and injects received events
   into the local bus with origin="peer"
3. Locally published events are forwarded to the transport
4. A transport failure schedules a reconnect after base_delay * 2**n
   seconds (n = 0 .. max_attempts-1); once the attempts are used up the
   channel stays down until the next explicit connect().
   A reconnect re-joins with the same peer id and resumes from the last
   cursor seen, so events relayed during the outage arrive (possibly twice)
5. disconnect() cancels any pending reconnect and leaves the relay
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

import httpx

from .events import ORIGIN_PEER, LedgerEvent

logger = logging.getLogger("posledger.peers")


class PeerTransportError(Exception):
    """The relay could not be reached or rejected the request."""


def reconnect_delays(base_delay: float, max_attempts: int) -> list[float]:
    return [base_delay * (2 ** n) for n in range(max(0, max_attempts))]


class HttpRelayTransport:
    """httpx client for the realtime relay blueprint."""

    def __init__(self, base_url: str, client: Optional[httpx.Client] = None, poll_timeout: float = 25.0):
        self.base_url = base_url.rstrip("/")
        self.poll_timeout = poll_timeout
        self._client = client or httpx.Client(timeout=poll_timeout + 10)
        self.peer_id: Optional[str] = None
        self.cursor = 0

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = self._client.request(method, f"{self.base_url}{path}", **kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPError as exc:
            raise PeerTransportError(f"{method} {path} failed: {exc}") from exc

    def open(self, actor_id: str, actor_name: Optional[str] = None) -> None:
        """
        Join the relay. Re-opening after a failure keeps the peer id and
        resumes from the last cursor seen, so nothing relayed during the
        outage is skipped.
        """
        body = {"actor_id": actor_id, "actor_name": actor_name}
        if self.peer_id is not None:
            body["peer_id"] = self.peer_id
            body["cursor"] = self.cursor
        data = self._request("POST", "/api/realtime/peers", json=body).json()
        self.peer_id = data["peer_id"]
        self.cursor = int(data.get("cursor", 0))

    def send(self, event: dict) -> None:
        if self.peer_id is None:
            raise PeerTransportError("transport is not open")
        self._request("POST", "/api/realtime/events", json={"peer_id": self.peer_id, "event": event})

    def receive(self) -> list[dict]:
        if self.peer_id is None:
            raise PeerTransportError("transport is not open")
        data = self._request(
            "GET",
            "/api/realtime/events",
            params={"peer_id": self.peer_id, "cursor": self.cursor, "timeout": self.poll_timeout},
        ).json()
        self.cursor = int(data.get("cursor", self.cursor))
        return list(data.get("events", []))

    def close(self) -> None:
        peer_id, self.peer_id = self.peer_id, None
        self.cursor = 0
        if peer_id is not None:
            self._request("DELETE", f"/api/realtime/peers/{peer_id}")


class PeerChannel:
    def __init__(self, bus, transport, *, base_delay: float = 1.0, max_attempts: int = 5):
        self.bus = bus
        self.transport = transport
        self.base_delay = base_delay
        self.max_attempts = max_attempts
        # Reconnect attempts used in the current outage
        self.attempts = 0
        self.scheduled_delays: list[float] = []
        self.actor_id: Optional[str] = None
        self.actor_name: Optional[str] = None
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._connected = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._remove_forwarder = None

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    def connect(self, actor_id: str, actor_name: Optional[str] = None) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self.actor_id = actor_id
            self.actor_name = actor_name
            self.attempts = 0
            self.scheduled_delays = []
            self._stop.clear()
            if self._remove_forwarder is None:
                self._remove_forwarder = self.bus.add_forwarder(self._forward)
            self._thread = threading.Thread(target=self._supervise, name="posledger-peers", daemon=True)
            self._thread.start()

    def disconnect(self, timeout: float = 5.0) -> None:
        self._stop.set()
        with self._lock:
            if self._remove_forwarder is not None:
                self._remove_forwarder()
                self._remove_forwarder = None
            thread = self._thread
        was_connected = self._connected.is_set()
        self._connected.clear()
        if was_connected:
            try:
                self.transport.close()
            except PeerTransportError:
                logger.warning("Leaving the relay failed", exc_info=True)
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the supervisor to stop (gave up or disconnected)."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def _supervise(self) -> None:
        while not self._stop.is_set():
            try:
                self.transport.open(self.actor_id, self.actor_name)
                self._connected.set()
                self.attempts = 0
                logger.info("Peer channel connected as %s", self.actor_id)
                self._receive_loop()
            except PeerTransportError as exc:
                self._connected.clear()
                logger.warning("Peer channel failure: %s", exc)
            if self._stop.is_set():
                break
            if self.attempts >= self.max_attempts:
                logger.error("Peer channel giving up after %d reconnect attempts", self.attempts)
                break
            delay = self.base_delay * (2 ** self.attempts)
            self.attempts += 1
            self.scheduled_delays.append(delay)
            if self._stop.wait(delay):
                break
        self._connected.clear()

    def _receive_loop(self) -> None:
        while not self._stop.is_set():
            for data in self.transport.receive():
                try:
                    event = LedgerEvent.from_dict(data, origin=ORIGIN_PEER)
                except (KeyError, TypeError, ValueError):
                    logger.warning("Dropping malformed peer event: %r", data)
                    continue
                self.bus.deliver(event)

    def _forward(self, event: LedgerEvent) -> None:
        if not self._connected.is_set():
            logger.debug("Peer channel down; not forwarding %s", event.event_type)
            return
        self.transport.send(event.to_dict())
