"""Shared fixtures: in-memory gateways and a test client wired to them."""

import hashlib

import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_content_store, get_ledger
from api.main import app
from api.services.registry.discovery_date import check_discovery_date, extract_year
from api.services.registry.errors import (
    CollaboratorUnavailableError,
    ContentUnavailableError,
    LedgerRevertError,
    VersionNotFoundError,
    VulnerabilityNotFoundError,
)
from api.services.registry.gateways.content_store import ContentStore
from api.services.registry.gateways.ledger import LedgerGateway
from api.services.registry.identifiers import build_bvc_id, is_likely_base_id
from api.services.registry.models import (
    RegistryIndex,
    SubmissionReceipt,
    TxReceipt,
    VulnerabilityRecord,
)
from api.services.registry.service import RegistryService


class FakeLedger(LedgerGateway):
    """In-memory stand-in for the registry contract.

    Mirrors the contract rules the service relies on: append-only creation
    order, one BVC ID per BaseId, versions counted from 1, a per
    (platform, year) sequence and a status flag outside the version chain.
    """

    def __init__(self):
        self.entries: dict[str, dict] = {}
        self.order: list[str] = []
        self.counters: dict[tuple[str, int], int] = {}
        self.block_number = 100
        self.pre_generate_supported = True
        self.reachable = True
        self.broken_bvc_ids: set[str] = set()
        self.calls: list[str] = []

    def _check_reachable(self) -> None:
        if not self.reachable:
            raise CollaboratorUnavailableError("ledger", "connection refused")

    def _next_tx(self) -> TxReceipt:
        self.block_number += 1
        return TxReceipt(tx_hash=f"0x{self.block_number:064x}", block_number=self.block_number)

    def _record(self, base_id: str, version: int) -> VulnerabilityRecord:
        entry = self.entries[base_id]
        snapshot = entry["versions"][version - 1]
        return VulnerabilityRecord(
            base_id=base_id,
            bvc_id=entry["bvc_id"],
            version=version,
            is_active=entry["is_active"],
            **snapshot,
        )

    def _base_id_for_bvc(self, bvc_id: str) -> str:
        for base_id, entry in self.entries.items():
            if entry["bvc_id"] == bvc_id:
                return base_id
        raise VulnerabilityNotFoundError("Vulnerability does not exist")

    async def submit_vulnerability(self, base_id, title, description, content_hash, platform, discovery_date):
        self.calls.append("submit_vulnerability")
        self._check_reachable()
        valid, reason = check_discovery_date(discovery_date)
        if not valid:
            raise LedgerRevertError(f"Invalid discoveryDate: {reason}")

        entry = self.entries.get(base_id)
        if entry is None:
            key = (platform, extract_year(discovery_date))
            self.counters[key] = self.counters.get(key, 0) + 1
            entry = {
                "bvc_id": build_bvc_id(platform, key[1], self.counters[key]),
                "versions": [],
                "is_active": True,
            }
            self.entries[base_id] = entry
            self.order.append(base_id)

        entry["versions"].append({
            "title": title,
            "description": description,
            "content_hash": content_hash,
            "platform": platform,
            "discovery_date": discovery_date,
        })
        tx = self._next_tx()
        return SubmissionReceipt(
            bvc_id=entry["bvc_id"],
            version=len(entry["versions"]),
            tx_hash=tx.tx_hash,
            block_number=tx.block_number,
        )

    async def pre_generate_bvc_id(self, platform, discovery_date):
        self.calls.append("pre_generate_bvc_id")
        self._check_reachable()
        if not self.pre_generate_supported:
            raise LedgerRevertError("preGenerateBvcId is not supported")
        year = extract_year(discovery_date)
        return build_bvc_id(platform, year, self.counters.get((platform, year), 0) + 1)

    async def fetch_latest(self, identifier):
        self.calls.append("fetch_latest")
        self._check_reachable()
        if identifier in self.broken_bvc_ids:
            raise LedgerRevertError("execution reverted")
        base_id = identifier if is_likely_base_id(identifier) else self._base_id_for_bvc(identifier)
        if base_id not in self.entries:
            raise VulnerabilityNotFoundError("Vulnerability does not exist")
        return self._record(base_id, len(self.entries[base_id]["versions"]))

    async def fetch_version(self, base_id, version):
        self.calls.append("fetch_version")
        self._check_reachable()
        if base_id not in self.entries:
            raise VulnerabilityNotFoundError("Vulnerability does not exist")
        if version < 1 or version > len(self.entries[base_id]["versions"]):
            raise VersionNotFoundError("Version does not exist")
        return self._record(base_id, version)

    async def list_versions(self, base_id):
        self.calls.append("list_versions")
        self._check_reachable()
        entry = self.entries.get(base_id)
        if entry is None:
            return []
        return [entry["bvc_id"]] * len(entry["versions"])

    async def list_all_base_ids(self):
        self.calls.append("list_all_base_ids")
        self._check_reachable()
        return RegistryIndex(
            base_ids=list(self.order),
            bvc_ids=[self.entries[b]["bvc_id"] for b in self.order],
        )

    async def list_page(self, page, page_size):
        self.calls.append("list_page")
        self._check_reachable()
        bvc_ids = [self.entries[b]["bvc_id"] for b in self.order]
        start = (page - 1) * page_size
        return bvc_ids[start:start + page_size]

    async def count(self):
        self._check_reachable()
        return len(self.order)

    async def set_active(self, base_id, is_active):
        self.calls.append("set_active")
        self._check_reachable()
        if base_id not in self.entries:
            raise VulnerabilityNotFoundError("Vulnerability does not exist")
        self.entries[base_id]["is_active"] = is_active
        return self._next_tx()

    async def get_current_counter(self, platform, year):
        self._check_reachable()
        return self.counters.get((platform, year), 0)

    async def ping(self):
        self._check_reachable()
        return {"block_number": self.block_number, "contract": "0xFake", "contract_accessible": True}


class FakeContentStore(ContentStore):
    """In-memory content-addressed store."""

    def __init__(self):
        self.blobs: dict[str, bytes] = {}
        self.uploads: list[tuple[str, str]] = []
        self.available = True

    async def put(self, data, name):
        if not self.available:
            raise ContentUnavailableError(f"Upload of {name} failed")
        content_hash = "Qm" + hashlib.sha256(data).hexdigest()[:44]
        self.blobs[content_hash] = data
        self.uploads.append((name, content_hash))
        return content_hash

    async def get(self, content_hash, timeout=None):
        if not self.available or content_hash not in self.blobs:
            raise ContentUnavailableError(f"Could not fetch {content_hash}")
        return self.blobs[content_hash]

    def url_for(self, content_hash):
        return f"https://gateway.test/ipfs/{content_hash}"

    async def ping(self, timeout=None):
        return self.available


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def content_store() -> FakeContentStore:
    return FakeContentStore()


@pytest.fixture
def service(ledger, content_store, tmp_path) -> RegistryService:
    return RegistryService(ledger, content_store, documents_path=tmp_path)


@pytest.fixture
def client(ledger, content_store):
    """Test client whose gateways are the in-memory fakes."""
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_content_store] = lambda: content_store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
