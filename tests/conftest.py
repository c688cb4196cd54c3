import json
import threading

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from entity_service.core.engine import EngineReply, ResolutionEngine
from entity_service.core.provider import EngineProvider, registry
from entity_service.core.worker_pool import BoundedWorkerPool
from entity_service.main import app

TEST_DATA_SOURCES = ["CUSTOMERS", "WATCHLIST"]


class FakeEngine(ResolutionEngine):
    """
    Scripted engine: every function answers with whatever was scripted for
    it (status 0 and an empty payload by default) and records the call.
    """

    def __init__(self):
        self.calls = []
        self.replies = {}
        self.last_code = 0
        self.last_message = ""
        self.destroyed = False

    def script(self, function, payload="", status=0, error_code=0, error_message=""):
        if not isinstance(payload, str):
            payload = json.dumps(payload)
        self.replies[function] = (status, payload, error_code, error_message)

    def called(self, function):
        return [call for call in self.calls if call[0] == function]

    def _reply(self, function, *args):
        self.calls.append((function, args, threading.current_thread().name))
        status, payload, code, message = self.replies.get(function, (0, "", 0, ""))
        if status != 0:
            self.last_code = code
            self.last_message = message
        return EngineReply(status, payload)

    def add_record(self, data_source, record_id, record_json, load_id=None):
        return self._reply("add_record", data_source, record_id, record_json, load_id)

    def add_record_with_returned_record_id(self, data_source, record_json, load_id=None):
        return self._reply(
            "add_record_with_returned_record_id", data_source, record_json, load_id
        )

    def get_record(self, data_source, record_id):
        return self._reply("get_record", data_source, record_id)

    def get_entity_by_entity_id(self, entity_id, flags):
        return self._reply("get_entity_by_entity_id", entity_id, flags)

    def get_entity_by_record_id(self, data_source, record_id, flags):
        return self._reply("get_entity_by_record_id", data_source, record_id, flags)

    def find_network_by_entity_id(self, entity_ids_json, max_degrees, build_out_degrees, max_entity_count, flags):
        return self._reply(
            "find_network_by_entity_id",
            entity_ids_json, max_degrees, build_out_degrees, max_entity_count, flags,
        )

    def find_network_by_record_id(self, record_ids_json, max_degrees, build_out_degrees, max_entity_count, flags):
        return self._reply(
            "find_network_by_record_id",
            record_ids_json, max_degrees, build_out_degrees, max_entity_count, flags,
        )

    def search_by_attributes(self, attributes_json, flags):
        return self._reply("search_by_attributes", attributes_json, flags)

    def get_last_exception_code(self):
        return self.last_code

    def get_last_exception(self):
        return self.last_message

    def clear_last_exception(self):
        self.last_code = 0
        self.last_message = ""

    def destroy(self):
        self.destroyed = True


@pytest.fixture(scope="function")
def engine():
    return FakeEngine()


# Provider with a small pool, closed once the test is done
@pytest.fixture(scope="function")
def provider(engine):
    pool = BoundedWorkerPool(2, "test-worker")
    engine_provider = EngineProvider(engine, pool, data_sources=TEST_DATA_SOURCES)
    yield engine_provider
    engine_provider.close(wait_for_drain=True)


@pytest.fixture(scope="function")
def installed_provider(provider):
    token = registry.install(provider)
    yield provider
    registry.uninstall(token)


# Client
@pytest_asyncio.fixture(scope="function")
async def client(installed_provider):
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac


# Client with no provider installed at all
@pytest_asyncio.fixture(scope="function")
async def bare_client():
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
