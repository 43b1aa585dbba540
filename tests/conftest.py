"""
restlayer — Test Configuration (conftest.py)
=============================================

What:  Shared pytest fixtures for the test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixtures:
    invoices:    In-memory CRUD collaborator for the billing/Invoices model
    server:      Fresh RestServer on an unused port (never bound)
    api_client:  Factory: server → HTTPX AsyncClient talking to its ASGI app
    log_trace:   Captures restlayer log records (and shared trace entries)
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import pytest
from httpx import ASGITransport, AsyncClient

from restlayer import ModelInfo, create_server


# ══════════════════════════════════════════════════════════════════════════
# Fake CRUD Collaborator
# ══════════════════════════════════════════════════════════════════════════

class InvoiceRecord:
    """Record exposing the to_obj() serialization hook."""

    def __init__(self, data: Dict[str, Any]):
        self.data = dict(data)

    def to_obj(self) -> Dict[str, Any]:
        return dict(self.data)


class InMemoryInvoices:
    """
    Dict-backed collaborator for model route tests.

    ``fail_with`` makes every operation raise the given exception.
    """

    def __init__(self):
        self.records: Dict[str, InvoiceRecord] = {}
        self.fail_with: Optional[Exception] = None
        self.calls: List[tuple] = []

    def _check(self, operation: str, *args: Any) -> None:
        self.calls.append((operation, *args))
        if self.fail_with is not None:
            raise self.fail_with

    def get_model(self) -> ModelInfo:
        return ModelInfo(name="Invoice", namespace="billing", plural_name="Invoices")

    async def create(self, data):
        self._check("create", data)
        record = InvoiceRecord(data)
        self.records[str(data["id"])] = record
        return record

    async def retrieve(self, id):
        self._check("retrieve", id)
        return self.records.get(id)

    async def update(self, id, data):
        self._check("update", id, data)
        record = InvoiceRecord({**self.records[id].data, **data})
        self.records[id] = record
        return record

    async def delete(self, id):
        self._check("delete", id)
        self.records.pop(id, None)

    async def search(self, query):
        self._check("search", query)
        return {"instances": list(self.records.values()), "page": None}

    async def bulk_insert(self, items):
        self._check("bulk_insert", items)
        for item in items:
            self.records[str(item["id"])] = InvoiceRecord(item)

    async def bulk_delete(self, criteria):
        self._check("bulk_delete", criteria)
        for id in criteria.get("ids", []):
            self.records.pop(str(id), None)


# ══════════════════════════════════════════════════════════════════════════
# Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def invoices():
    return InMemoryInvoices()


@pytest.fixture
def server():
    return create_server({"rest_api": {"port": 8080}})


@pytest.fixture
def api_client():
    """
    Provides a factory for async HTTP test clients.

    Usage:
        async with api_client(server) as client:
            response = await client.get("/billing/invoices/1")
    """

    @asynccontextmanager
    async def _client(server):
        transport = ASGITransport(app=server.build_app())
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client

    return _client


class TraceHandler(logging.Handler):
    """Appends every record's message to a shared trace list."""

    def __init__(self, trace: List[Any]):
        super().__init__(level=logging.DEBUG)
        self.trace = trace
        self.records: List[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)
        self.trace.append(record.getMessage())


@pytest.fixture
def log_trace(caplog):
    """
    Collects restlayer log records into ``handler.records`` and messages into
    ``handler.trace``; tests can append their own markers to the same list.
    """
    caplog.set_level(logging.DEBUG, logger="restlayer")
    handler = TraceHandler([])
    restlayer_logger = logging.getLogger("restlayer")
    restlayer_logger.addHandler(handler)
    yield handler
    restlayer_logger.removeHandler(handler)
