"""
Shared fixtures: in-memory fake of the remote sheets API and a SQLite history store.
"""
import asyncio
import copy
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTO_SYNC_WORKER_ENABLED", "false")
os.environ.setdefault("VALIDATION_DEBOUNCE_SECONDS", "0.02")
os.environ.setdefault("LOG_LEVEL", "INFO")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from sheetsync.database import Base
from sheetsync import models  # noqa: F401 - register all models with Base
from sheetsync.services.sheet_integration import SheetIntegration
from sheetsync.services.sheets_api import SheetsApiError
from sheetsync.services.sync_history import SyncHistory

ACCOUNT_ID = "acc-1"
HEADER = ["Name", "Phone", "Product"]


class FakeSheetsApi:
    """Async stand-in for SheetsApiClient that records every call."""

    def __init__(self):
        self.calls = []
        self.fail = set()
        self.gates = {}
        self.commit_status = True
        self.rows_created = None
        self.account = {"id": ACCOUNT_ID, "email": "shop@example.com", "name": "Shop", "sheets": []}
        self.spreadsheets = {
            "SHEET123": [{"id": "0", "name": "Sheet1"}, {"id": "1", "name": "Abandoned"}],
            "EMPTY": [],
        }
        self.headers = {
            ("SHEET123", "Sheet1"): list(HEADER),
            ("SHEET123", "Abandoned"): ["Client", "Tel", "Item"],
        }
        # Index 0 is sheet row 1 (the header)
        self.sheet_rows = {
            ("SHEET123", "Sheet1"): [
                list(HEADER),
                ["Amina", "0550000001", "Lamp"],
                ["Yacine", "0550000002", "Desk"],
                ["Sara", "0550000003", "Chair"],
            ],
            ("SHEET123", "Abandoned"): [["Client", "Tel", "Item"]],
        }
        self.saved = {}
        self._next_id = 1

    async def _call(self, name, *args):
        self.calls.append((name,) + args)
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()
        if name in self.fail:
            raise SheetsApiError(f"{name} failed")

    def count(self, name):
        return sum(1 for c in self.calls if c[0] == name)

    def calls_to(self, name):
        return [c for c in self.calls if c[0] == name]

    async def get_account(self, account_id=None):
        await self._call("get_account", account_id)
        return copy.deepcopy(self.account)

    async def delete_account(self, account_id):
        await self._call("delete_account", account_id)
        return True

    async def list_sheets(self, account_id, file_id):
        await self._call("list_sheets", account_id, file_id)
        if file_id not in self.spreadsheets:
            raise SheetsApiError("File not found")
        return list(self.spreadsheets[file_id])

    async def get_header_row(self, account_id, file_id, sheet_name):
        await self._call("get_header_row", account_id, file_id, sheet_name)
        if (file_id, sheet_name) not in self.headers:
            raise SheetsApiError("Sheet not found")
        return list(self.headers[(file_id, sheet_name)])

    async def get_rows(self, account_id, file_id, sheet_name, start_row):
        await self._call("get_rows", account_id, file_id, sheet_name, start_row)
        rows = self.sheet_rows.get((file_id, sheet_name))
        if rows is None:
            raise SheetsApiError("Sheet not found")
        return [list(rows[0])] + [list(r) for r in rows[start_row - 1:]]

    async def create_spreadsheet_file(self, account_id, title):
        await self._call("create_spreadsheet_file", account_id, title)
        self.spreadsheets["NEWFILE"] = [{"id": "0", "name": "new"}, {"id": "1", "name": "abandoned"}]
        return {"id": "NEWFILE", "name": title}

    async def create_channel_config(self, account_id, content):
        await self._call("create_channel_config", account_id, copy.deepcopy(content))
        config_id = f"cfg-{self._next_id}"
        self._next_id += 1
        self.saved[config_id] = copy.deepcopy(content)
        return {"id": config_id}

    async def update_channel_config(self, account_id, config_id, content):
        await self._call("update_channel_config", account_id, config_id, copy.deepcopy(content))
        self.saved[config_id] = copy.deepcopy(content)
        return {"status": True}

    async def delete_channel_config(self, account_id, config_id):
        await self._call("delete_channel_config", account_id, config_id)
        self.saved.pop(config_id, None)
        return {"status": True}

    async def commit_rows(self, account_id, config_id, start_row):
        await self._call("commit_rows", account_id, config_id, start_row)
        return {"status": self.commit_status, "rowsCreated": self.rows_created}

    def append_rows(self, file_id, sheet_name, *rows):
        self.sheet_rows[(file_id, sheet_name)].extend([list(r) for r in rows])


def run(coro):
    return asyncio.run(coro)


def map_required(integration, kind="new"):
    integration.set_mapping(kind, "fullName", "Name")
    integration.set_mapping(kind, "phone", "Phone")
    integration.set_mapping(kind, "products.name", "Product")
    integration.set_mapping(kind, "products.sku", "Product")


@pytest.fixture
def fake_api():
    return FakeSheetsApi()


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def history(session_factory):
    return SyncHistory(session_factory)


@pytest.fixture
def integration(fake_api, history):
    return SheetIntegration(fake_api, ACCOUNT_ID, history=history, debounce_seconds=0.02)


@pytest.fixture
def configured(integration):
    """Integration whose `new` channel points at SHEET123/Sheet1 with the required fields mapped."""
    channel = integration.store.get("new")
    channel.file_id = "SHEET123"
    channel.sheet_name = "Sheet1"
    map_required(integration)
    return integration
