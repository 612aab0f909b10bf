"""Unit tests for the caller-facing ERP integration facade."""

import pytest
from unittest.mock import AsyncMock, Mock, patch
from keyring.errors import KeyringError
from sqlalchemy import create_engine

from fixtures.fake_erp import FakeErpDatabase, FakeErpPool, fake_article
from connectors.integration_service import ErpIntegrationService
from connectors.pool_manager import PoolState
from connectors.ports import ConnectionFailedError
from connectors.schemas import ReferenceKind, ReferenceEntity
from models import Customer
from observability.request_id import get_operation_id


def sqlite_engine_factory(connection_settings, password, timeout_seconds, pool_size):
    return create_engine("sqlite://")


@pytest.fixture
def service(session_factory, vault):
    return ErpIntegrationService.create_default(
        session_factory=session_factory,
        vault=vault,
        engine_factory=sqlite_engine_factory,
    )


@pytest.fixture
def settings_payload():
    return {
        "host": "wawi.example.local",
        "port": 1433,
        "database": "eazybusiness",
        "user": "crm",
        "order_defaults": {"erp_user_id": 1, "shop_id": 0, "platform_id": 1, "language_id": 1},
    }


class TestSettings:

    @pytest.mark.asyncio
    async def test_save_and_get(self, service, settings_payload, vault):
        result = await service.save_settings({**settings_payload, "password": "s3cret"})

        assert result.success is True
        saved = await service.get_settings()
        assert saved.host == "wawi.example.local"
        assert not hasattr(saved, "password")
        assert vault.get(saved.identity) == "s3cret"

    @pytest.mark.asyncio
    async def test_save_without_password_keeps_vault(self, service, settings_payload, vault):
        await service.save_settings({**settings_payload, "password": "s3cret"})

        await service.save_settings({**settings_payload, "encrypt": False})

        saved = await service.get_settings()
        assert saved.encrypt is False
        assert vault.get(saved.identity) == "s3cret"

    @pytest.mark.asyncio
    async def test_save_with_empty_password_deletes_it(self, service, settings_payload, vault):
        await service.save_settings({**settings_payload, "password": "s3cret"})

        await service.save_settings({**settings_payload, "password": ""})

        saved = await service.get_settings()
        assert vault.get(saved.identity) is None

    @pytest.mark.asyncio
    async def test_vault_failure_still_saves_settings(self, service, settings_payload):
        with patch("connectors.credential_vault.keyring.set_password", side_effect=KeyringError("locked")):
            result = await service.save_settings({**settings_payload, "password": "s3cret"})

        assert result.success is False
        assert "Failed to save credentials securely" in result.error
        assert (await service.get_settings()).host == "wawi.example.local"

    @pytest.mark.asyncio
    async def test_invalid_settings(self, service):
        result = await service.save_settings({"host": "", "database": "db"})

        assert result.success is False
        assert await service.get_settings() is None

    @pytest.mark.asyncio
    async def test_save_closes_live_pool(self, service, settings_payload):
        await service.save_settings({**settings_payload, "password": "s3cret"})
        await service.pool_manager.get_pool()
        assert service.pool_manager.state == PoolState.CONNECTED

        await service.save_settings({**settings_payload, "host": "other-host"})

        assert service.pool_manager.state == PoolState.ABSENT


class TestConnectionTest:

    @pytest.mark.asyncio
    async def test_with_password(self, service, settings_payload):
        assert await service.test_connection({**settings_payload, "password": "s3cret"}) is True

    @pytest.mark.asyncio
    async def test_falls_back_to_stored_password(self, service, settings_payload):
        await service.save_settings({**settings_payload, "password": "s3cret"})

        assert await service.test_connection(settings_payload) is True

    @pytest.mark.asyncio
    async def test_without_any_password(self, service, settings_payload):
        assert await service.test_connection(settings_payload) is False


class TestClearPassword:

    @pytest.mark.asyncio
    async def test_without_settings(self, service):
        result = await service.clear_password()

        assert result.success is False
        assert "No ERP connection settings" in result.message

    @pytest.mark.asyncio
    async def test_clears_stored_password(self, service, settings_payload, vault):
        await service.save_settings({**settings_payload, "password": "s3cret"})

        result = await service.clear_password()

        assert result.success is True
        assert vault.get((await service.get_settings()).identity) is None

    @pytest.mark.asyncio
    async def test_nothing_stored(self, service, settings_payload):
        await service.save_settings(settings_payload)

        result = await service.clear_password()

        assert result.success is True
        assert result.message == "No stored password found."


class TestCreateOrder:

    @pytest.fixture
    def linked_customer(self, session_factory):
        session = session_factory()
        customer = Customer(name="Mustermann", first_name="Max", erp_customer_id=501, salutation="Herr")
        session.add(customer)
        session.commit()
        customer_id = customer.id
        session.close()
        return customer_id

    @pytest.fixture
    def erp_db(self):
        return FakeErpDatabase(articles={900: fake_article(900)})

    @pytest.fixture
    def order_payload(self, linked_customer):
        return {
            "local_customer_id": linked_customer,
            "legal_entity_id": 1,
            "warehouse_id": 2,
            "payment_method_id": 3,
            "shipping_method_id": 4,
            "line_items": [{"erp_article_id": 900, "quantity": 2, "unit_price": 19.99}],
        }

    @pytest.mark.asyncio
    async def test_success(self, service, settings_payload, order_payload, erp_db):
        await service.save_settings({**settings_payload, "password": "s3cret"})
        service.pool_manager.get_pool = AsyncMock(return_value=FakeErpPool(erp_db))

        result = await service.create_order(order_payload)

        assert result.success is True
        assert result.erp_order_id == 4711
        assert result.erp_order_number.startswith("EXTERN-")
        assert result.error is None

    @pytest.mark.asyncio
    async def test_no_valid_lines(self, service, settings_payload, order_payload):
        await service.save_settings({**settings_payload, "password": "s3cret"})
        service.pool_manager.get_pool = AsyncMock()

        result = await service.create_order({**order_payload, "line_items": [{"erp_article_id": -1}]})

        assert result.success is False
        assert result.erp_order_id is None
        assert result.erp_order_number is None
        assert result.error
        service.pool_manager.get_pool.assert_not_called()

    @pytest.mark.asyncio
    async def test_connection_failure_is_returned(self, service, settings_payload, order_payload):
        await service.save_settings({**settings_payload, "password": "s3cret"})
        service.pool_manager.get_pool = AsyncMock(side_effect=ConnectionFailedError("Login Failed: bad password"))

        result = await service.create_order(order_payload)

        assert result.success is False
        assert result.error == "Login Failed: bad password"

    @pytest.mark.asyncio
    async def test_unreachable_server_reports_driver_message(
        self, session_factory, vault, settings_payload, order_payload
    ):
        service = ErpIntegrationService.create_default(
            session_factory=session_factory,
            vault=vault,
            engine_factory=lambda *args: create_engine("sqlite:////nonexistent-dir/erp.db"),
        )
        await service.save_settings({**settings_payload, "password": "s3cret"})

        result = await service.create_order(order_payload)

        assert result.success is False
        assert result.error.startswith("Connection Error: ")
        assert "unable to open database file" in result.error
        assert result.erp_order_id is None

    @pytest.mark.asyncio
    async def test_invalid_input(self, service):
        result = await service.create_order({"line_items": []})

        assert result.success is False
        assert "Invalid order input" in result.error

    @pytest.mark.asyncio
    async def test_unexpected_errors_propagate(self, service, order_payload):
        service.order_service.create_order = AsyncMock(side_effect=RuntimeError("bug"))

        with pytest.raises(RuntimeError):
            await service.create_order(order_payload)

    @pytest.mark.asyncio
    async def test_each_call_gets_operation_id(self, service, order_payload):
        seen = []

        async def record(order):
            seen.append(get_operation_id())
            raise ConnectionFailedError("down")

        service.order_service.create_order = record

        await service.create_order(order_payload)
        await service.create_order(order_payload)

        assert len(set(seen)) == 2
        assert "no-operation-id" not in seen


class TestReferenceData:

    @pytest.mark.asyncio
    async def test_list_reference_entities(self, service):
        service.synchronizer.upsert_all(ReferenceKind.WAREHOUSE, [ReferenceEntity(erp_id=2, name="Standardlager")])

        entities = await service.list_reference_entities("WAREHOUSE")

        assert entities == [ReferenceEntity(erp_id=2, name="Standardlager")]

    @pytest.mark.asyncio
    async def test_sync_without_settings_reports_failure(self, service):
        summary = await service.sync_reference_data()

        assert summary.success is False
        assert len(summary.results) == 4
        assert (await service.get_last_sync_status()).status == "Error"

    @pytest.mark.asyncio
    async def test_last_sync_status_default(self, service):
        status = await service.get_last_sync_status()

        assert status.status == "Never"
