"""Identifier codec for registry keys.

Two identifier families coexist:

- **BaseId**: a 32-byte ledger key rendered as ``0x`` followed by 64 hex
  characters. Derived from a text identifier with Keccak-256, or from the
  submission tuple (platform, title, timestamp) with SHA-256 when the document
  has no identifier of its own.
- **BVC ID**: the human-facing ``BVC-<PLATFORM>-<YEAR>-<SEQ>`` string
  assigned by the ledger when a vulnerability is first registered.

Endpoints that accept "any identifier" must go through
``classify_identifier`` rather than sniffing prefixes themselves.
"""

import hashlib
import re

from web3 import Web3

from api.services.registry.errors import InputValidationError, InvalidIdentifierError
from api.services.registry.models import BvcIdParts, IdentifierKind

BVC_ID_PATTERN = re.compile(r"^BVC-(?P<platform>[A-Z]{2,5})-(?P<year>[0-9]{4})-(?P<sequence>[0-9]{3,5})$")
BASE_ID_PATTERN = re.compile(r"^0x[0-9a-fA-F]{64}$")
PLATFORM_PATTERN = re.compile(r"^[A-Z]{2,5}$")

BVC_ID_FORMAT_HINT = "BVC-PLATFORM-YEAR-ID (e.g., BVC-ETH-2023-001)"
PLATFORM_FORMAT_HINT = "Platform must be 2-5 uppercase letters (e.g., ETH, SOL, MULTI)"


def derive_base_id(text: str) -> str:
    """Derive the BaseId for a text identifier.

    Args:
        text: Human-chosen identifier (any string)

    Returns:
        ``0x``-prefixed Keccak-256 digest of the UTF-8 encoded text
    """
    return Web3.to_hex(Web3.keccak(text=text))


def hash_submission(platform: str, title: str, timestamp_ms: int) -> str:
    """Derive a BaseId for a document submitted without an identifier."""
    digest = hashlib.sha256(f"{platform}-{title}-{timestamp_ms}".encode("utf-8")).hexdigest()
    return "0x" + digest[:64]


def parse_bvc_id(bvc_id: str) -> BvcIdParts:
    """Split a BVC ID into platform, year and sequence.

    Args:
        bvc_id: Identifier such as ``BVC-ETH-2023-001``

    Returns:
        Parsed parts; ``parts.to_bvc_id()`` reproduces the input

    Raises:
        InvalidIdentifierError: If the string does not match the grammar
    """
    match = BVC_ID_PATTERN.match(bvc_id or "")
    if not match:
        raise InvalidIdentifierError(f"Invalid ID format. Expected format: {BVC_ID_FORMAT_HINT}")
    return BvcIdParts(
        platform=match.group("platform"),
        year=int(match.group("year")),
        sequence=match.group("sequence"),
    )


def build_bvc_id(platform: str, year: int, sequence: int, width: int = 3) -> str:
    """Construct a BVC ID from its parts.

    Raises:
        InputValidationError: If any part falls outside the grammar
    """
    validate_platform(platform)
    if not 0 <= year <= 9999:
        raise InputValidationError("Year must have four digits", field="year")
    if not 3 <= width <= 5:
        raise InputValidationError("Sequence width must be between 3 and 5", field="sequence")
    padded = f"{sequence:0{width}d}"
    if sequence < 0 or len(padded) > 5:
        raise InputValidationError("Sequence must fit in 5 digits", field="sequence")
    return f"BVC-{platform}-{year:04d}-{padded}"


def is_bvc_id(value: str) -> bool:
    return bool(BVC_ID_PATTERN.match(value or ""))


def is_likely_base_id(value: str) -> bool:
    """Return True if ``value`` has the shape of a raw BaseId."""
    return bool(BASE_ID_PATTERN.match(value or ""))


def classify_identifier(value: str) -> IdentifierKind:
    """Decide how an identifier supplied by a caller should be treated.

    Anything with the ``BVC-`` prefix must follow the BVC ID grammar; other
    strings that are not BaseIds are legacy text identifiers.

    Raises:
        InvalidIdentifierError: If the identifier is empty or a malformed BVC ID
    """
    if not value or not value.strip():
        raise InvalidIdentifierError("Identifier is required")
    if is_likely_base_id(value):
        return IdentifierKind.BASE_ID
    if value.startswith("BVC-"):
        parse_bvc_id(value)
        return IdentifierKind.BVC_ID
    return IdentifierKind.TEXT


def normalize_base_id(base_id: str) -> str:
    return base_id.lower()


def validate_platform(platform: str | None) -> str:
    """Check the platform code grammar.

    Raises:
        InputValidationError: If the platform is not 2-5 uppercase letters
    """
    if not isinstance(platform, str) or not PLATFORM_PATTERN.match(platform):
        raise InputValidationError(f"Invalid platform format. {PLATFORM_FORMAT_HINT}", field="platform")
    return platform
