# Overview: In-process relay hub that fans ledger events out to connected peers (long-poll).

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Optional

from ..models.base import new_id
from ..time_utils import to_utc_z, utcnow
from .events import EventTypes, LedgerEvent

logger = logging.getLogger("posledger.relay")


class UnknownPeerError(LookupError):
    """Peer id is not (or no longer) registered with the hub."""


class RelayHub:
    """
    Bounded event buffer with a monotonically increasing cursor.

    Every event is relayed to every registered peer except the one that sent
    it. Peers poll with the last cursor they saw; a peer that fell behind the
    buffer resumes from the oldest event still held.

    A peer that re-joins with its previous peer_id and cursor keeps its
    registration and resumes where it stopped, so events relayed while its
    link was down are still delivered. Peers not heard from for peer_ttl
    seconds are dropped and announced with peer-left.
    """

    def __init__(self, buffer_size: int = 1000, peer_ttl: Optional[float] = None, clock=time.monotonic):
        self._events: deque = deque(maxlen=max(1, buffer_size))
        self._cursor = 0
        self._peers: dict[str, dict] = {}
        self._cond = threading.Condition()
        self.peer_ttl = peer_ttl
        self._clock = clock

    @property
    def cursor(self) -> int:
        with self._cond:
            return self._cursor

    def _append(self, sender: Optional[str], event: dict) -> int:
        # Caller holds the condition
        self._cursor += 1
        self._events.append((self._cursor, sender, event))
        self._cond.notify_all()
        return self._cursor

    def _presence(self, event_type: str, peer_id: str, peer: dict) -> dict:
        return LedgerEvent(
            event_type=event_type,
            payload={"peer_id": peer_id, "actor_id": peer["actor_id"], "actor_name": peer["actor_name"]},
            timestamp=utcnow(),
            actor_id=peer["actor_id"],
        ).to_dict()

    def _drop(self, peer_id: str) -> bool:
        # Caller holds the condition
        peer = self._peers.pop(peer_id, None)
        if peer is None:
            return False
        self._append(peer_id, self._presence(EventTypes.PEER_LEFT, peer_id, peer))
        return True

    def _touch(self, peer_id: str) -> None:
        self._peers[peer_id]["last_seen"] = self._clock()

    def expire_stale(self) -> list[str]:
        """Drop peers silent for longer than peer_ttl; returns their ids."""
        if self.peer_ttl is None:
            return []
        with self._cond:
            cutoff = self._clock() - self.peer_ttl
            stale = [peer_id for peer_id, peer in self._peers.items() if peer["last_seen"] < cutoff]
            for peer_id in stale:
                self._drop(peer_id)
        for peer_id in stale:
            logger.info("Peer %s expired after %.0fs without contact", peer_id, self.peer_ttl)
        return stale

    def join(
        self,
        actor_id: str,
        actor_name: Optional[str] = None,
        *,
        peer_id: Optional[str] = None,
        cursor: Optional[int] = None,
    ) -> dict:
        """
        Register a peer, or refresh an existing registration.

        With a known peer_id nothing is broadcast. With a cursor the
        returned cursor is min(cursor, current) so the next poll replays
        what the peer missed.
        """
        self.expire_stale()
        with self._cond:
            peer = self._peers.get(peer_id) if peer_id else None
            rejoined = peer is not None
            if rejoined:
                peer["actor_name"] = actor_name or peer["actor_name"]
                self._touch(peer_id)
            else:
                peer_id = peer_id or new_id()
                peer = {
                    "actor_id": actor_id,
                    "actor_name": actor_name or actor_id,
                    "joined_at": utcnow(),
                    "last_seen": self._clock(),
                }
                self._peers[peer_id] = peer
                self._append(peer_id, self._presence(EventTypes.PEER_JOINED, peer_id, peer))
            current = self._cursor
            resume = current if cursor is None else max(0, min(int(cursor), current))
        if rejoined:
            logger.info("Peer %s re-joined as %s at cursor %d", peer_id, actor_id, resume)
        else:
            logger.info("Peer %s joined as %s", peer_id, actor_id)
        return {"peer_id": peer_id, "cursor": resume, "rejoined": rejoined}

    def leave(self, peer_id: str) -> bool:
        with self._cond:
            if not self._drop(peer_id):
                return False
        logger.info("Peer %s left", peer_id)
        return True

    def publish(self, peer_id: str, event: dict) -> int:
        if not isinstance(event, dict) or not event.get("event_type"):
            raise ValueError("event must be an object with an event_type")
        self.expire_stale()
        with self._cond:
            if peer_id not in self._peers:
                raise UnknownPeerError(peer_id)
            self._touch(peer_id)
            return self._append(peer_id, event)

    def _pending(self, peer_id: str, cursor: int) -> list[dict]:
        return [event for seq, sender, event in self._events if seq > cursor and sender != peer_id]

    def poll(self, peer_id: str, cursor: int, timeout: float = 0.0) -> tuple[list[dict], int]:
        """Events after cursor not sent by peer_id; waits up to timeout seconds for one."""
        self.expire_stale()
        deadline = time.monotonic() + max(0.0, timeout)
        with self._cond:
            if peer_id not in self._peers:
                raise UnknownPeerError(peer_id)
            self._touch(peer_id)
            while True:
                events = self._pending(peer_id, cursor)
                if events:
                    self._touch(peer_id)
                    return events, self._cursor
                remaining = deadline - time.monotonic()
                if peer_id not in self._peers:
                    return [], max(cursor, self._cursor)
                if remaining <= 0:
                    self._touch(peer_id)
                    return [], max(cursor, self._cursor)
                self._cond.wait(remaining)

    def peers(self) -> list[dict]:
        self.expire_stale()
        with self._cond:
            return [
                {
                    "peer_id": peer_id,
                    "actor_id": peer["actor_id"],
                    "actor_name": peer["actor_name"],
                    "joined_at": to_utc_z(peer["joined_at"]),
                }
                for peer_id, peer in self._peers.items()
            ]
