"""
Persistence gateway tests: upsert idempotence, write-through, failover.
"""

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker

from posledger.models import Item
from posledger.services import build_services
from posledger.services.events import EventTypes
from posledger.services.gateway import MODE_DEGRADED, MODE_ONLINE, REMOTE


def _unreachable_engine():
    return create_engine("sqlite:////nonexistent-posledger-dir/remote.db")


def _local_items(services):
    with Session(services.gateway.local_engine) as session:
        return {i.id: i.current_amount for i in session.scalars(select(Item))}


class TestSave:
    def test_save_is_idempotent_and_publishes_once(self, services, make_item):
        seen = []
        services.bus.subscribe(seen.append, event_types=[EventTypes.ITEM_CHANGED])

        item = make_item(stock=7)
        first = services.gateway.save(item)
        second = services.gateway.save(item)
        services.bus.join(timeout=5)

        stored = services.gateway.get(Item, item.id)
        assert first.to_dict() == second.to_dict() == stored.to_dict()
        assert stored.current_amount == 7
        # Only the create published; the two replays changed nothing
        assert len(seen) == 1
        assert seen[0].payload["entity"] == "items"
        assert seen[0].payload["data"]["id"] == item.id

    def test_save_upserts_changed_values(self, services, make_item):
        item = make_item(stock=3)
        item.name = "Cola Zero"
        services.gateway.save(item)

        assert services.gateway.get(Item, item.id).name == "Cola Zero"

    def test_get_missing_returns_none(self, services):
        assert services.gateway.get(Item, "missing") is None
        assert services.gateway.get(Item, None) is None

    def test_delete(self, services, make_item):
        item = make_item()
        assert services.gateway.delete(Item, item.id) is True
        assert services.gateway.delete(Item, item.id) is False
        assert services.gateway.get(Item, item.id) is None

    def test_list_filters(self, services, make_item):
        make_item(name="A", section="store")
        make_item(name="B", section="supplement")

        names = [i.name for i in services.gateway.list(Item, order_by=Item.name, section="store")]
        assert names == ["A"]

    def test_publish_failure_never_fails_save(self, services, make_item, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("bus down")

        monkeypatch.setattr(services.bus, "publish", boom)
        item = make_item()
        assert services.gateway.get(Item, item.id) is not None


class TestWriteThrough:
    def test_remote_writes_are_mirrored_to_local_cache(self, services, make_item):
        item = make_item(stock=4)
        assert _local_items(services) == {item.id: 4}

    def test_purges_are_mirrored(self, services, make_item):
        item = make_item()
        services.gateway.delete(Item, item.id)
        assert _local_items(services) == {}


class TestFailover:
    def test_unreachable_remote_initializes_degraded(self, engines, ledger_config):
        _, local = engines
        svc = build_services(_unreachable_engine(), local, ledger_config)
        try:
            assert svc.gateway.initialize() == MODE_DEGRADED
            assert svc.gateway.status()["reason"]

            item = svc.catalog.create_item(
                {"name": "Water", "section": "store", "sell_price_cents": 500, "cost_price_cents": 200},
                actor="admin",
            )
            assert svc.gateway.get(Item, item.id).name == "Water"
        finally:
            svc.close()

    def test_failure_mid_session_fails_over_with_same_identity(self, services, make_item):
        item = make_item(stock=5)
        assert services.gateway.mode == MODE_ONLINE

        # Remote goes away
        services.gateway._sessions[REMOTE] = sessionmaker(bind=_unreachable_engine(), expire_on_commit=False)

        services.catalog.update_item(item.id, {"current_amount": 9}, actor="admin")

        assert services.gateway.mode == MODE_DEGRADED
        assert services.gateway.get(Item, item.id).current_amount == 9
        assert _local_items(services) == {item.id: 9}

    def test_degraded_mode_is_sticky_until_initialize(self, services, make_item):
        good = services.gateway._sessions[REMOTE]
        services.gateway._sessions[REMOTE] = sessionmaker(bind=_unreachable_engine(), expire_on_commit=False)
        make_item(name="Offline")
        assert services.gateway.mode == MODE_DEGRADED

        # Remote is back, but the process keeps using the local cache
        services.gateway._sessions[REMOTE] = good
        offline_only = make_item(name="Still offline")
        assert services.gateway.mode == MODE_DEGRADED
        with Session(services.gateway.remote_engine) as session:
            assert session.get(Item, offline_only.id) is None

        assert services.gateway.initialize() == MODE_ONLINE

    def test_domain_errors_do_not_degrade(self, services):
        from posledger.validation import ConflictError

        def _op(uow):
            raise ConflictError("nope")

        with pytest.raises(ConflictError):
            services.gateway.run(_op)
        assert services.gateway.mode == MODE_ONLINE
