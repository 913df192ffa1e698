"""Ledger gateway for the vulnerability registry contract.

The ledger owns the canonical version counter, the BVC ID sequence per
(platform, year) and the active flag of each logical vulnerability. The
registry service only talks to it through ``LedgerGateway``.

``Web3LedgerGateway`` is the production implementation. Contract calls return
positional tuples; ``decode_vulnerability`` is the single place that knows the
field order and turns them into ``VulnerabilityRecord`` objects.
"""

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from web3 import AsyncWeb3, Web3
from web3.exceptions import (
    ContractLogicError,
    ProviderConnectionError,
    TimeExhausted,
    Web3Exception,
)
from web3.logs import DISCARD

from api.services.registry.errors import (
    CollaboratorUnavailableError,
    ConflictError,
    LedgerRevertError,
    RegistryError,
    VersionNotFoundError,
    VulnerabilityNotFoundError,
)
from api.services.registry.identifiers import is_likely_base_id
from api.services.registry.models import (
    RegistryIndex,
    SubmissionReceipt,
    TxReceipt,
    VulnerabilityRecord,
)

logger = logging.getLogger(__name__)

# Field order of getVulnerability(string) results.
RECORD_FIELDS = (
    "bvc_id",
    "version",
    "base_id",
    "title",
    "description",
    "content_hash",
    "platform",
    "discovery_date",
    "technical_details_hash",
    "proof_of_exploit_hash",
    "is_active",
)

# Events that announce the BVC ID of a new registration, newest first.
BVC_ID_EVENTS = ("BvcIdGenerated", "VulnerabilityRegistered")


class LedgerGateway(ABC):
    """Operations the registry service needs from the ledger."""

    @abstractmethod
    async def submit_vulnerability(
        self,
        base_id: str,
        title: str,
        description: str,
        content_hash: str,
        platform: str,
        discovery_date: str,
    ) -> SubmissionReceipt:
        """Append a version under ``base_id`` and wait for confirmation.

        The first submission for a BaseId allocates version 1 and a fresh
        BVC ID; later ones allocate the next version under the same BVC ID.
        """
        pass

    @abstractmethod
    async def pre_generate_bvc_id(self, platform: str, discovery_date: str) -> str:
        """Predict the BVC ID the next registration would receive."""
        pass

    @abstractmethod
    async def fetch_latest(self, identifier: str) -> VulnerabilityRecord:
        """Fetch the latest version by BVC ID or BaseId."""
        pass

    @abstractmethod
    async def fetch_version(self, base_id: str, version: int) -> VulnerabilityRecord:
        """Fetch one version of a logical vulnerability."""
        pass

    @abstractmethod
    async def list_versions(self, base_id: str) -> list[str]:
        """BVC ID of each version, in ascending version order."""
        pass

    @abstractmethod
    async def list_all_base_ids(self) -> RegistryIndex:
        """Every logical vulnerability, in creation order."""
        pass

    @abstractmethod
    async def list_page(self, page: int, page_size: int) -> list[str]:
        """One 1-indexed page of BVC IDs, in creation order."""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Number of logical vulnerabilities."""
        pass

    @abstractmethod
    async def set_active(self, base_id: str, is_active: bool) -> TxReceipt:
        """Flip the active flag of a logical vulnerability."""
        pass

    @abstractmethod
    async def get_current_counter(self, platform: str, year: int) -> int:
        """Last sequence number issued for (platform, year)."""
        pass

    @abstractmethod
    async def ping(self) -> dict[str, Any]:
        """Probe connectivity; raises CollaboratorUnavailableError when down."""
        pass


def decode_vulnerability(raw: Sequence[Any]) -> VulnerabilityRecord:
    """Map a positional ``getVulnerability`` result to a record.

    Raises:
        VulnerabilityNotFoundError: If the ledger returned an empty struct
        LedgerRevertError: If the tuple does not have the expected layout
    """
    if len(raw) != len(RECORD_FIELDS):
        raise LedgerRevertError(
            f"Unexpected ledger record layout: {len(raw)} fields, expected {len(RECORD_FIELDS)}"
        )
    values = dict(zip(RECORD_FIELDS, raw))

    version = int(values["version"])
    if version == 0:
        raise VulnerabilityNotFoundError()

    return VulnerabilityRecord(
        base_id=_to_hex(values["base_id"]),
        bvc_id=values["bvc_id"],
        version=version,
        title=values["title"],
        description=values["description"],
        content_hash=values["content_hash"],
        platform=values["platform"],
        discovery_date=values["discovery_date"],
        is_active=bool(values["is_active"]),
        technical_details_hash=_optional_hash(values["technical_details_hash"]),
        proof_of_exploit_hash=_optional_hash(values["proof_of_exploit_hash"]),
    )


def classify_ledger_error(reason: str) -> RegistryError:
    """Translate a contract revert reason into the registry taxonomy."""
    lowered = (reason or "").lower()
    if "version does not exist" in lowered or "invalid version" in lowered:
        return VersionNotFoundError(reason)
    if "does not exist" in lowered or "not found" in lowered:
        return VulnerabilityNotFoundError(reason)
    if "already exists" in lowered:
        return ConflictError(reason)
    return LedgerRevertError(reason)


def _to_hex(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(value)
    return value or ""


def _optional_hash(value: Any) -> str | None:
    # An all-zero bytes32 means the hash was never set.
    if isinstance(value, (bytes, bytearray)) and not any(value):
        return None
    return _to_hex(value) or None


@contextmanager
def _ledger_errors(context: str) -> Iterator[None]:
    """Convert web3 exceptions raised inside the block."""
    try:
        yield
    except RegistryError:
        raise
    except ContractLogicError as e:
        reason = e.message or str(e)
        logger.error(f"Contract error in {context}: {reason}")
        raise classify_ledger_error(reason) from e
    except TimeExhausted as e:
        logger.error(f"Timed out waiting for receipt in {context}: {e}")
        raise CollaboratorUnavailableError("ledger", f"Transaction not confirmed in time: {e}") from e
    except (ProviderConnectionError, OSError, TimeoutError) as e:
        logger.error(f"Ledger unreachable in {context}: {e}")
        raise CollaboratorUnavailableError("ledger", str(e)) from e
    except Web3Exception as e:
        logger.error(f"Ledger call failed in {context}: {e}")
        raise LedgerRevertError(str(e)) from e


def load_contract_abi(path: Path) -> list[dict[str, Any]]:
    """Read the ABI out of a compiled contract artifact.

    Raises:
        CollaboratorUnavailableError: If the artifact is missing or has no ABI
    """
    try:
        with open(path, encoding="utf-8") as f:
            artifact = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise CollaboratorUnavailableError("ledger", f"Contract config error: {e}") from e

    abi = artifact.get("abi") if isinstance(artifact, dict) else None
    if not abi:
        raise CollaboratorUnavailableError("ledger", "Contract config error: ABI not found in contract artifact")
    return abi


class Web3LedgerGateway(LedgerGateway):
    """Ledger gateway backed by the registry contract through web3.py."""

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        abi_path: Path,
        private_key: str,
        receipt_timeout: float = 120.0,
    ):
        """Initialize the gateway.

        The ABI is read lazily on first use so the API can start (and report
        an unhealthy ledger) even when the artifact is missing.

        Args:
            rpc_url: JSON-RPC endpoint
            contract_address: Registry contract address
            abi_path: Compiled contract artifact containing the ABI
            private_key: Key used to sign transactions
            receipt_timeout: Seconds to wait for a transaction to be mined
        """
        self.rpc_url = rpc_url
        self.contract_address = contract_address
        self.abi_path = abi_path
        self.receipt_timeout = receipt_timeout
        self.w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))
        self._private_key = private_key
        self._account = None
        self._contract = None

    @property
    def contract(self):
        if self._contract is None:
            if not self.contract_address:
                raise CollaboratorUnavailableError("ledger", "Contract config error: contract address is not set")
            self._contract = self.w3.eth.contract(
                address=Web3.to_checksum_address(self.contract_address),
                abi=load_contract_abi(self.abi_path),
            )
        return self._contract

    @property
    def account(self):
        if self._account is None:
            if not self._private_key:
                raise CollaboratorUnavailableError("ledger", "Signing key is not configured")
            self._account = self.w3.eth.account.from_key(self._private_key)
        return self._account

    async def _transact(self, context: str, function) -> dict[str, Any]:
        """Sign, send and wait for a contract transaction."""
        with _ledger_errors(context):
            sender = self.account.address
            tx = await function.build_transaction({
                "from": sender,
                "nonce": await self.w3.eth.get_transaction_count(sender),
            })
            signed = self.account.sign_transaction(tx)
            tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
            logger.info(f"Transaction submitted ({context}): {Web3.to_hex(tx_hash)}")
            receipt = await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)

        if receipt["status"] != 1:
            raise LedgerRevertError(f"Transaction {Web3.to_hex(tx_hash)} reverted in {context}")
        return receipt

    def _bvc_id_from_receipt(self, receipt: dict[str, Any]) -> str | None:
        for event_name in BVC_ID_EVENTS:
            try:
                event = getattr(self.contract.events, event_name)
            except AttributeError:
                continue
            for log in event().process_receipt(receipt, errors=DISCARD):
                bvc_id = log["args"].get("bvc_id")
                if bvc_id:
                    return bvc_id
        return None

    async def submit_vulnerability(
        self,
        base_id: str,
        title: str,
        description: str,
        content_hash: str,
        platform: str,
        discovery_date: str,
    ) -> SubmissionReceipt:
        with _ledger_errors("addVulnerability"):
            function = self.contract.functions.addVulnerability(
                base_id, title, description, content_hash, platform, discovery_date,
            )
        receipt = await self._transact("addVulnerability", function)

        bvc_id = self._bvc_id_from_receipt(receipt)
        latest = await self.fetch_latest(base_id)
        if bvc_id and bvc_id != latest.bvc_id:
            logger.warning(f"Event BVC ID {bvc_id} differs from stored {latest.bvc_id} for {base_id}")

        return SubmissionReceipt(
            bvc_id=latest.bvc_id,
            version=latest.version,
            tx_hash=Web3.to_hex(receipt["transactionHash"]),
            block_number=receipt["blockNumber"],
        )

    async def pre_generate_bvc_id(self, platform: str, discovery_date: str) -> str:
        with _ledger_errors("preGenerateBvcId"):
            return await self.contract.functions.preGenerateBvcId(platform, discovery_date).call()

    async def fetch_latest(self, identifier: str) -> VulnerabilityRecord:
        if is_likely_base_id(identifier):
            versions = await self.list_versions(identifier)
            if not versions:
                raise VulnerabilityNotFoundError()
            identifier = versions[-1]

        with _ledger_errors("getVulnerability"):
            raw = await self.contract.functions.getVulnerability(identifier).call()
        return decode_vulnerability(raw)

    async def fetch_version(self, base_id: str, version: int) -> VulnerabilityRecord:
        versions = await self.list_versions(base_id)
        if not versions:
            raise VulnerabilityNotFoundError()
        if version < 1 or version > len(versions):
            raise VersionNotFoundError(f"Version {version} does not exist for {base_id}")

        with _ledger_errors("getVulnerability"):
            raw = await self.contract.functions.getVulnerability(versions[version - 1]).call()
        record = decode_vulnerability(raw)

        # getVulnerability resolves a BVC ID to its newest version; older
        # snapshots are only reachable when the list entry keys them directly.
        if record.version != version:
            raise VersionNotFoundError(
                f"Version {version} of {base_id} is not retrievable from the ledger "
                f"(entry {versions[version - 1]} resolves to version {record.version})"
            )
        return record

    async def list_versions(self, base_id: str) -> list[str]:
        with _ledger_errors("getVulnerabilityVersions"):
            return list(await self.contract.functions.getVulnerabilityVersions(base_id).call())

    async def list_all_base_ids(self) -> RegistryIndex:
        with _ledger_errors("getAllBaseVulnerabilityIds"):
            base_ids, bvc_ids = await self.contract.functions.getAllBaseVulnerabilityIds().call()
        return RegistryIndex(
            base_ids=[_to_hex(b) for b in base_ids],
            bvc_ids=list(bvc_ids),
        )

    async def list_page(self, page: int, page_size: int) -> list[str]:
        with _ledger_errors("getPaginatedVulnerabilityIds"):
            return list(await self.contract.functions.getPaginatedVulnerabilityIds(page, page_size).call())

    async def count(self) -> int:
        return len(await self.list_all_base_ids())

    async def set_active(self, base_id: str, is_active: bool) -> TxReceipt:
        with _ledger_errors("setVulnerabilityStatus"):
            function = self.contract.functions.setVulnerabilityStatus(base_id, is_active)
        receipt = await self._transact("setVulnerabilityStatus", function)
        return TxReceipt(
            tx_hash=Web3.to_hex(receipt["transactionHash"]),
            block_number=receipt["blockNumber"],
        )

    async def get_current_counter(self, platform: str, year: int) -> int:
        with _ledger_errors("getCurrentCounter"):
            return int(await self.contract.functions.getCurrentCounter(platform, year).call())

    async def ping(self) -> dict[str, Any]:
        with _ledger_errors("ping"):
            block_number = await self.w3.eth.block_number
            await self.contract.functions.getAllBaseVulnerabilityIds().call()
        return {
            "block_number": block_number,
            "contract": self.contract_address,
            "contract_accessible": True,
        }
