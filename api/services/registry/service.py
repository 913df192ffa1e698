"""Registry service.

Orchestrates the identifier codec, the discovery-date validator and the two
gateways to implement the registry operations:

- create (two-phase: provisional upload, ledger confirmation, reconcile)
- fetch one, fetch all, fetch a page, fetch by platform
- version history
- status toggle

Input is validated before any gateway call. Read paths treat the content
store as best-effort: a missing body degrades the response rather than
failing it. Enumerations isolate failures per item, so one broken entry is
reported with an ``error`` marker instead of aborting the listing.
"""

import json
import logging
import time
from pathlib import Path
from typing import Any

from api.services.registry.discovery_date import (
    MAX_YEAR,
    MIN_YEAR,
    check_discovery_date,
    extract_year,
    validate_discovery_date,
)
from api.services.registry.errors import (
    ContentUnavailableError,
    InputValidationError,
    RegistryError,
    VulnerabilityNotFoundError,
)
from api.services.registry.gateways.content_store import ContentStore
from api.services.registry.gateways.ledger import LedgerGateway
from api.services.registry.identifiers import (
    classify_identifier,
    derive_base_id,
    hash_submission,
    is_bvc_id,
    normalize_base_id,
    parse_bvc_id,
    validate_platform,
)
from api.services.registry.models import IdentifierKind, VulnerabilityRecord

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("title", "description", "platform", "discoveryDate")
TEXT_FIELDS = ("title", "description")


def record_view(record: VulnerabilityRecord) -> dict[str, Any]:
    """Render a ledger record for API responses."""
    return {
        "bvc_id": record.bvc_id,
        "base_id": record.base_id,
        "version": str(record.version),
        "title": record.title,
        "description": record.description,
        "platform": record.platform,
        "discovery_date": record.discovery_date,
        "discovery_year": extract_year(record.discovery_date),
        "status": "active" if record.is_active else "inactive",
        "is_active": record.is_active,
        "technical_details_hash": record.technical_details_hash,
        "proof_of_exploit_hash": record.proof_of_exploit_hash,
    }


def _decode_body(raw: bytes) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        return raw.decode("utf-8", errors="replace")


class RegistryService:
    """Vulnerability registry operations over the ledger and content store."""

    def __init__(
        self,
        ledger: LedgerGateway,
        content_store: ContentStore,
        documents_path: Path | None = None,
        fetch_timeout: float = 3.0,
    ):
        """Initialize the service.

        Args:
            ledger: Ledger gateway
            content_store: Content store gateway
            documents_path: Directory that ``file_path`` references resolve in
            fetch_timeout: Timeout for best-effort body fetches, in seconds
        """
        self.ledger = ledger
        self.content_store = content_store
        self.documents_path = documents_path
        self.fetch_timeout = fetch_timeout

    # ------------------------------------------------------------------
    # Identifier resolution
    # ------------------------------------------------------------------

    async def resolve_base_id(self, identifier: str) -> str:
        """Resolve any accepted identifier to the BaseId the ledger keys on.

        BVC IDs are resolved through the ledger, since a BVC ID is assigned
        by the contract and is not derivable from the BaseId.
        """
        kind = classify_identifier(identifier)
        if kind is IdentifierKind.BASE_ID:
            return normalize_base_id(identifier)
        if kind is IdentifierKind.BVC_ID:
            record = await self.ledger.fetch_latest(identifier)
            return record.base_id
        return derive_base_id(identifier)

    async def _fetch_latest(self, identifier: str) -> VulnerabilityRecord:
        kind = classify_identifier(identifier)
        if kind is IdentifierKind.TEXT:
            identifier = derive_base_id(identifier)
        elif kind is IdentifierKind.BASE_ID:
            identifier = normalize_base_id(identifier)
        return await self.ledger.fetch_latest(identifier)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def load_document(
        self,
        document: dict[str, Any] | None = None,
        file_path: str | None = None,
    ) -> dict[str, Any]:
        """Return the vulnerability document given inline or by file reference.

        Raises:
            InputValidationError: If neither is given, or the file is unusable
        """
        if document is not None:
            return document
        if not file_path:
            raise InputValidationError("Either document or file_path is required", field="document")
        if self.documents_path is None:
            raise InputValidationError("File references are not enabled", field="file_path")

        root = self.documents_path.resolve()
        path = (root / file_path).resolve()
        if not path.is_relative_to(root):
            raise InputValidationError("file_path must point inside the documents directory", field="file_path")

        try:
            with open(path, encoding="utf-8") as f:
                loaded = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Invalid vulnerability file {file_path}: {e}")
            raise InputValidationError(f"Invalid vulnerability file: {e}", field="file_path") from e

        if not isinstance(loaded, dict):
            raise InputValidationError("Vulnerability file must contain a JSON object", field="file_path")
        logger.info(f"Vulnerability file loaded: {file_path}")
        return loaded

    def validate_document(self, document: dict[str, Any]) -> int:
        """Check required fields, platform, discovery date and the optional id.

        Returns:
            The discovery year

        Raises:
            InputValidationError: Naming the first offending field
        """
        missing = [name for name in REQUIRED_FIELDS if not document.get(name)]
        if missing:
            raise InputValidationError(f"Missing required fields: {', '.join(missing)}", field=missing[0])

        for name in TEXT_FIELDS:
            if not isinstance(document[name], str):
                raise InputValidationError(f"{name} must be a string", field=name)

        validate_platform(document["platform"])
        if document.get("id"):
            classify_identifier(str(document["id"]))
        return validate_discovery_date(str(document["discoveryDate"]), field="discoveryDate")

    async def _provisional_bvc_id(self, platform: str, discovery_date: str, year: int, now_ms: int) -> str:
        """Best guess of the BVC ID the ledger will assign, used to name the upload."""
        try:
            predicted = await self.ledger.pre_generate_bvc_id(platform, discovery_date)
            if is_bvc_id(predicted):
                logger.info(f"Pre-generated BVC ID {predicted}")
                return predicted
            logger.warning(f"Ledger pre-generated a malformed BVC ID: {predicted!r}")
        except RegistryError as e:
            logger.warning(f"Failed to pre-generate BVC ID: {e}")

        placeholder = f"BVC-{platform}-{year:04d}-001-{str(now_ms)[6:]}"
        logger.info(f"Using placeholder upload name {placeholder}")
        return placeholder

    async def _base_id_for(self, document: dict[str, Any], now_ms: int) -> str:
        text_id = document.get("id")
        if not text_id:
            return hash_submission(document["platform"], document["title"], now_ms)

        text_id = str(text_id)
        kind = classify_identifier(text_id)
        if kind is IdentifierKind.BASE_ID:
            return normalize_base_id(text_id)
        if kind is IdentifierKind.BVC_ID:
            try:
                return (await self.ledger.fetch_latest(text_id)).base_id
            except VulnerabilityNotFoundError:
                logger.info(f"{text_id} is not registered yet; deriving a new BaseId from it")
        return derive_base_id(text_id)

    async def create(self, document: dict[str, Any]) -> dict[str, Any]:
        """Register a vulnerability, or a new version of an existing one.

        Content is uploaded under a provisional name before the ledger
        confirms the BVC ID. When the confirmed id differs, the content is
        uploaded again under the confirmed name. If the ledger write fails the
        provisional upload is left behind unreferenced.

        Returns:
            ``{"identifiers", "ledger", "content"}`` combined receipt
        """
        year = self.validate_document(document)
        platform = document["platform"]
        discovery_date = str(document["discoveryDate"])
        now_ms = int(time.time() * 1000)

        provisional = await self._provisional_bvc_id(platform, discovery_date, year, now_ms)
        body = json.dumps(document, indent=2).encode("utf-8")
        filename = f"{provisional}.json"
        content_hash = await self.content_store.put(body, filename)

        base_id = await self._base_id_for(document, now_ms)
        receipt = await self.ledger.submit_vulnerability(
            base_id,
            document["title"],
            document["description"],
            content_hash,
            platform,
            discovery_date,
        )
        logger.info(
            f"Ledger confirmed {receipt.bvc_id} v{receipt.version} "
            f"in block {receipt.block_number} (tx {receipt.tx_hash})"
        )

        reconciled = False
        if receipt.bvc_id != provisional:
            logger.info(f"Confirmed BVC ID {receipt.bvc_id} differs from {provisional}; re-uploading content")
            try:
                content_hash = await self.content_store.put(body, f"{receipt.bvc_id}.json")
                filename = f"{receipt.bvc_id}.json"
                reconciled = True
            except ContentUnavailableError as e:
                logger.warning(f"Re-upload under {receipt.bvc_id}.json failed, keeping {filename}: {e}")

        return {
            "message": "Vulnerability recorded",
            "identifiers": {
                "bvc_id": receipt.bvc_id,
                "base_id": base_id,
            },
            "ledger": {
                "tx_hash": receipt.tx_hash,
                "block_number": receipt.block_number,
                "version": str(receipt.version),
            },
            "content": {
                "hash": content_hash,
                "url": self.content_store.url_for(content_hash),
                "filename": filename,
                "reconciled": reconciled,
            },
        }

    async def pre_generate_bvc_id(self, platform: str, discovery_date: str) -> dict[str, Any]:
        """Ask the ledger which BVC ID the next registration would receive."""
        validate_platform(platform)
        validate_discovery_date(discovery_date)
        bvc_id = await self.ledger.pre_generate_bvc_id(platform, discovery_date)
        return {"bvc_id": bvc_id, "platform": platform, "discovery_date": discovery_date}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _content_view(self, record: VulnerabilityRecord) -> dict[str, Any]:
        view: dict[str, Any] = {"hash": None, "url": None, "data": None, "error": None}
        if not record.content_hash:
            return view

        view["hash"] = record.content_hash
        view["url"] = self.content_store.url_for(record.content_hash)
        try:
            raw = await self.content_store.get(record.content_hash, timeout=self.fetch_timeout)
            view["data"] = _decode_body(raw)
        except ContentUnavailableError as e:
            logger.warning(f"Content fetch failed for {record.bvc_id} ({record.content_hash}): {e}")
            view["error"] = e.message
        return view

    async def get(self, identifier: str) -> dict[str, Any]:
        """Latest version of a vulnerability with its body, when retrievable.

        Raises:
            VulnerabilityNotFoundError: If the ledger has no such vulnerability
        """
        record = await self._fetch_latest(identifier)
        view = record_view(record)
        view["content"] = await self._content_view(record)
        return view

    async def _list_item(self, bvc_id: str, base_id: str | None = None) -> dict[str, Any]:
        try:
            record = await self.ledger.fetch_latest(bvc_id)
        except RegistryError as e:
            logger.warning(f"Skipping details for {bvc_id}: {e}")
            return {"bvc_id": bvc_id, "base_id": base_id, "content": None, "error": e.message}

        item = record_view(record)
        item["content"] = await self._content_view(record)
        item["error"] = None
        return item

    async def list_all(self) -> dict[str, Any]:
        """Every vulnerability in creation order."""
        index = await self.ledger.list_all_base_ids()
        items = [
            await self._list_item(bvc_id, base_id)
            for base_id, bvc_id in zip(index.base_ids, index.bvc_ids)
        ]
        return {"count": len(items), "items": items}

    @staticmethod
    def _check_page(page: int, page_size: int) -> None:
        if page < 1:
            raise InputValidationError("page must be a positive integer", field="page")
        if page_size < 1:
            raise InputValidationError("page_size must be a positive integer", field="page_size")

    async def list_page(self, page: int, page_size: int) -> dict[str, Any]:
        """One page of vulnerabilities, stable while the registry only grows."""
        self._check_page(page, page_size)
        total = await self.ledger.count()
        bvc_ids = await self.ledger.list_page(page, page_size)
        items = [await self._list_item(bvc_id) for bvc_id in bvc_ids]
        pages = (total + page_size - 1) // page_size
        return {
            "items": items,
            "total": total,
            "page": page,
            "page_size": page_size,
            "pages": pages,
            "has_next": page < pages,
            "has_prev": page > 1,
        }

    async def list_by_platform(self, platform: str) -> dict[str, Any]:
        """Vulnerabilities whose BVC ID carries ``platform``."""
        validate_platform(platform)
        index = await self.ledger.list_all_base_ids()

        items = []
        for base_id, bvc_id in zip(index.base_ids, index.bvc_ids):
            try:
                if parse_bvc_id(bvc_id).platform != platform:
                    continue
            except InputValidationError:
                logger.warning(f"Ledger returned a malformed BVC ID {bvc_id!r} for {base_id}")
                continue
            items.append(await self._list_item(bvc_id, base_id))

        return {"platform": platform, "count": len(items), "items": items}

    async def list_ids(self, page: int | None = None, page_size: int | None = None) -> dict[str, Any]:
        """Identifiers only, without fetching records."""
        if page is None:
            index = await self.ledger.list_all_base_ids()
            return {"count": len(index), "bvc_ids": index.bvc_ids, "base_ids": index.base_ids}

        page_size = page_size or 10
        self._check_page(page, page_size)
        total = await self.ledger.count()
        bvc_ids = await self.ledger.list_page(page, page_size)
        return {
            "bvc_ids": bvc_ids,
            "total": total,
            "page": page,
            "page_size": page_size,
            "pages": (total + page_size - 1) // page_size,
        }

    async def get_versions(self, identifier: str) -> dict[str, Any]:
        """All versions of a vulnerability in ascending order.

        Raises:
            VulnerabilityNotFoundError: If the BaseId has no versions
        """
        base_id = await self.resolve_base_id(identifier)
        bvc_ids = await self.ledger.list_versions(base_id)
        if not bvc_ids:
            raise VulnerabilityNotFoundError(f"No versions recorded for {identifier}")

        versions = []
        for version, bvc_id in enumerate(bvc_ids, start=1):
            try:
                record = await self.ledger.fetch_version(base_id, version)
            except RegistryError as e:
                logger.warning(f"Skipping version {version} of {base_id}: {e}")
                versions.append({"bvc_id": bvc_id, "version": str(version), "error": e.message})
                continue
            entry = record_view(record)
            entry["content_hash"] = record.content_hash
            entry["error"] = None
            versions.append(entry)

        return {
            "id": identifier,
            "base_id": base_id,
            "bvc_id": bvc_ids[-1],
            "count": len(versions),
            "versions": versions,
        }

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def set_status(self, identifier: str, is_active: bool) -> dict[str, Any]:
        """Activate or deactivate a vulnerability; creates no new version."""
        if not isinstance(is_active, bool):
            raise InputValidationError("is_active must be a boolean", field="is_active")
        base_id = await self.resolve_base_id(identifier)
        receipt = await self.ledger.set_active(base_id, is_active)
        logger.info(f"Status of {base_id} set to {is_active} (tx {receipt.tx_hash})")
        return {
            "message": f"Status updated to {'active' if is_active else 'inactive'}",
            "base_id": base_id,
            "is_active": is_active,
            "tx_hash": receipt.tx_hash,
            "block_number": receipt.block_number,
        }

    # ------------------------------------------------------------------
    # Helpers exposed over HTTP
    # ------------------------------------------------------------------

    def check_discovery_date(self, date: str) -> dict[str, Any]:
        """Validate a discovery date and report its year.

        Raises:
            InputValidationError: If the date is invalid
        """
        valid, reason = check_discovery_date(date)
        if not valid:
            raise InputValidationError(reason, field="date")
        return {"valid": True, "year": extract_year(date)}

    async def current_counter(self, platform: str, year: int) -> dict[str, Any]:
        """Last sequence number the ledger issued for (platform, year)."""
        validate_platform(platform)
        if year < MIN_YEAR or year > MAX_YEAR:
            raise InputValidationError(f"Year must be between {MIN_YEAR} and {MAX_YEAR}", field="year")
        counter = await self.ledger.get_current_counter(platform, year)
        return {"platform": platform, "year": year, "counter": counter}
