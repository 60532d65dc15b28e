from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from app.core.errors import ContainerNameTooLongError, DuplicateStackError, StackNotFoundError, StoreError
from app.db.session import SessionLocal
from app.schemas.stack import StackDefinition, StackDefinitionBase
from app.services.stack_store import StackStore


def _services(stack) -> list[tuple]:
    return [(svc.id, svc.name, svc.image, svc.container_config) for svc in stack.services]


class TestStackStore:
    def test_create_then_get_round_trip(self, db_session, make_payload):
        payload = make_payload(services=3)
        StackStore(db_session).create_stack(StackDefinition.model_validate(payload))

        with SessionLocal() as other:
            stack = StackStore(other).get_stack("shop")
            assert stack is not None
            assert stack.name == "shop"
            assert _services(stack) == [
                (svc["id"], svc["name"], svc["image"], svc["containerConfig"]) for svc in payload["services"]
            ]

    def test_config_keys_not_sent_are_not_added(self, db_session, make_payload):
        payload = make_payload(services=1)
        payload["services"][0]["containerConfig"] = {"environment": {"A": "1"}}
        stack = StackStore(db_session).create_stack(StackDefinition.model_validate(payload))

        assert stack.services[0].container_config == {"environment": {"A": "1"}}

    def test_create_duplicate_id(self, db_session, make_payload):
        store = StackStore(db_session)
        store.create_stack(StackDefinition.model_validate(make_payload()))

        with pytest.raises(DuplicateStackError):
            store.create_stack(StackDefinition.model_validate(make_payload()))

        assert len(store.get_stack("shop").services) == 2

    def test_create_rejects_long_container_name(self, db_session, make_payload):
        payload = make_payload(stack_id="s" * 31, services=1)
        definition = StackDefinition.model_validate(payload)
        definition.services[0].id = "x" * 32

        with pytest.raises(ContainerNameTooLongError):
            StackStore(db_session).create_stack(definition)
        assert StackStore(db_session).get_stack("s" * 31) is None

    def test_update_replaces_service_set(self, db_session, make_payload):
        store = StackStore(db_session)
        store.create_stack(StackDefinition.model_validate(make_payload(services=2)))

        update = make_payload(services=3)
        update["name"] = "shop-v2"
        update["services"][0]["image"] = "nginx:1.27"
        stack = store.update_stack("shop", StackDefinitionBase.model_validate(update))

        assert stack.name == "shop-v2"
        assert [svc.id for svc in stack.services] == ["web", "db", "cache"]
        assert stack.services[0].image == "nginx:1.27"

    def test_update_can_shrink_service_set(self, db_session, make_payload):
        store = StackStore(db_session)
        store.create_stack(StackDefinition.model_validate(make_payload(services=3)))

        store.update_stack("shop", StackDefinitionBase.model_validate(make_payload(services=1)))

        with SessionLocal() as other:
            assert [svc.id for svc in StackStore(other).get_stack("shop").services] == ["web"]

    def test_update_is_idempotent(self, db_session, make_payload):
        store = StackStore(db_session)
        store.create_stack(StackDefinition.model_validate(make_payload(services=1)))
        update = StackDefinitionBase.model_validate(make_payload(services=3))

        first = _services(store.update_stack("shop", update))
        second = _services(store.update_stack("shop", update))

        assert first == second

    def test_update_missing_stack(self, db_session, make_payload):
        with pytest.raises(StackNotFoundError):
            StackStore(db_session).update_stack("nope", StackDefinitionBase.model_validate(make_payload()))

    def test_delete_stack(self, db_session, make_payload):
        store = StackStore(db_session)
        store.create_stack(StackDefinition.model_validate(make_payload()))

        assert store.delete_stack("shop") is True
        assert store.get_stack("shop") is None
        assert store.get_service("shop", "web") is None

    def test_delete_missing_stack_returns_false(self, db_session):
        assert StackStore(db_session).delete_stack("ghost") is False

    def test_list_stacks_newest_first(self, db_session, make_payload):
        store = StackStore(db_session)
        base = datetime(2026, 1, 1, tzinfo=timezone.utc)
        for stack_id, age_hours in (("old", 3), ("new", 1), ("mid", 2)):
            stack = store.create_stack(StackDefinition.model_validate(make_payload(stack_id=stack_id)))
            stack.created_at = base - timedelta(hours=age_hours)
        db_session.commit()

        with SessionLocal() as other:
            assert [stack.id for stack in StackStore(other).list_stacks()] == ["new", "mid", "old"]

    def test_get_service(self, db_session, make_payload):
        store = StackStore(db_session)
        store.create_stack(StackDefinition.model_validate(make_payload()))

        service = store.get_service("shop", "db")
        assert service is not None
        assert service.image == "postgres:16"
        assert store.get_service("shop", "cache") is None

    def test_container_config_round_trip(self, db_session, make_payload):
        config = {
            "ports": [{"containerPort": 80, "hostPort": 8080}],
            "environment": {"FOO": "bar"},
            "volumes": [{"hostPath": "/data", "containerPath": "/app/data"}],
        }
        payload = make_payload(services=1)
        payload["services"][0]["containerConfig"] = config
        StackStore(db_session).create_stack(StackDefinition.model_validate(payload))

        with SessionLocal() as other:
            assert StackStore(other).get_service("shop", "web").container_config == config

    def test_nested_config_keys_are_kept(self, db_session, make_payload):
        config = {
            "ports": [{"containerPort": 53, "hostPort": 5353, "protocol": "udp"}],
            "volumes": [{"hostPath": "/srv/dns", "containerPath": "/etc/dns", "readOnly": True}],
            "restartPolicy": "always",
        }
        payload = make_payload(services=1)
        payload["services"][0]["containerConfig"] = config
        StackStore(db_session).create_stack(StackDefinition.model_validate(payload))

        with SessionLocal() as other:
            assert StackStore(other).get_service("shop", "web").container_config == config

    def test_timestamps_read_back_in_utc(self, db_session, make_payload):
        created = StackStore(db_session).create_stack(StackDefinition.model_validate(make_payload()))

        with SessionLocal() as other:
            loaded = StackStore(other).get_stack("shop")
            assert loaded.created_at.tzinfo is not None
            assert loaded.created_at == created.created_at
            assert loaded.services[0].updated_at.utcoffset() == timedelta(0)


class TestStackStoreTransactions:
    def _seed(self, db_session, make_payload) -> StackStore:
        store = StackStore(db_session)
        store.create_stack(StackDefinition.model_validate(make_payload(services=2)))
        return store

    def _assert_untouched(self):
        with SessionLocal() as other:
            stack = StackStore(other).get_stack("shop")
            assert stack.name == "shop"
            assert [svc.id for svc in stack.services] == ["web", "db"]

    def test_database_error_mid_update_rolls_back(self, db_session, make_payload, monkeypatch):
        store = self._seed(db_session, make_payload)

        def fail_insert(*_args, **_kwargs):
            raise OperationalError("INSERT INTO services", {}, Exception("disk I/O error"))

        monkeypatch.setattr(store, "_build_services", fail_insert)
        update = make_payload(services=3)
        update["name"] = "renamed"

        with pytest.raises(StoreError) as exc_info:
            store.update_stack("shop", StackDefinitionBase.model_validate(update))

        assert isinstance(exc_info.value.__cause__, OperationalError)
        self._assert_untouched()
        assert [svc.id for svc in store.get_stack("shop").services] == ["web", "db"]

    def test_other_error_mid_update_rolls_back_and_propagates(self, db_session, make_payload, monkeypatch):
        store = self._seed(db_session, make_payload)

        def fail_build(*_args, **_kwargs):
            raise RuntimeError("out of memory")

        monkeypatch.setattr(store, "_build_services", fail_build)

        with pytest.raises(RuntimeError, match="out of memory"):
            store.update_stack("shop", StackDefinitionBase.model_validate(make_payload(services=1)))

        self._assert_untouched()

    def test_failed_create_leaves_nothing_behind(self, db_session, make_payload, monkeypatch):
        store = StackStore(db_session)

        def fail_insert(*_args, **_kwargs):
            raise OperationalError("INSERT INTO services", {}, Exception("database is locked"))

        monkeypatch.setattr(store, "_build_services", fail_insert)

        with pytest.raises(StoreError):
            store.create_stack(StackDefinition.model_validate(make_payload()))

        with SessionLocal() as other:
            assert StackStore(other).get_stack("shop") is None
