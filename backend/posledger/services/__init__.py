# Overview: Wires one process-scoped set of ledger services (no module-level singletons).

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from flask import current_app

from .archive_service import PeriodArchiver
from .audit_service import AuditLog
from .catalog_service import Catalog
from .debt_service import CustomerDebtLedger
from .events import EventBus
from .gateway import PersistenceGateway
from .peers import HttpRelayTransport, PeerChannel
from .relay import RelayHub
from .shift_service import ShiftLedger
from .supplier_service import SupplierDebtAccount

EXTENSION_KEY = "posledger"


@dataclass
class LedgerServices:
    bus: EventBus
    gateway: PersistenceGateway
    audit: AuditLog
    catalog: Catalog
    shifts: ShiftLedger
    debts: CustomerDebtLedger
    supplier: SupplierDebtAccount
    archiver: PeriodArchiver
    relay: RelayHub
    peers: Optional[PeerChannel] = None

    def close(self) -> None:
        if self.peers is not None:
            self.peers.disconnect()
        self.bus.close()


def build_services(remote_engine, local_engine, config: Mapping) -> LedgerServices:
    bus = EventBus(actor_id=config.get("TERMINAL_ID"))
    gateway = PersistenceGateway(
        remote_engine,
        local_engine,
        bus,
        write_through=config.get("LOCAL_CACHE_WRITE_THROUGH", True),
        retry_attempts=config.get("STORE_RETRY_ATTEMPTS", 3),
        retry_backoff=config.get("STORE_RETRY_BACKOFF", 0.05),
    )
    audit = AuditLog(gateway)
    supplier = SupplierDebtAccount(gateway, audit)

    peers = None
    relay_url = config.get("PEER_RELAY_URL")
    if relay_url:
        transport = HttpRelayTransport(relay_url, poll_timeout=config.get("PEER_POLL_TIMEOUT", 25.0))
        peers = PeerChannel(
            bus,
            transport,
            base_delay=config.get("PEER_RECONNECT_BASE_DELAY", 1.0),
            max_attempts=config.get("PEER_MAX_RECONNECT_ATTEMPTS", 5),
        )

    return LedgerServices(
        bus=bus,
        gateway=gateway,
        audit=audit,
        catalog=Catalog(gateway, audit),
        shifts=ShiftLedger(gateway, audit, supplier),
        debts=CustomerDebtLedger(gateway, audit),
        supplier=supplier,
        archiver=PeriodArchiver(gateway, audit),
        relay=RelayHub(config.get("RELAY_BUFFER_SIZE", 1000), peer_ttl=config.get("RELAY_PEER_TTL", 90.0)),
        peers=peers,
    )


def get_services() -> LedgerServices:
    return current_app.extensions[EXTENSION_KEY]
