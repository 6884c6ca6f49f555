"""
Decoding of the extraction service's text response into transactions.
No partial recovery: a response either decodes completely or fails.
"""
import json
import re
from dataclasses import dataclass
from typing import Any, List, Optional

from pydantic import ValidationError

from core.exceptions import MalformedResponseError
from core.logger import setup_logger
from core.schema import TransactionRecord

logger = setup_logger(__name__)

EXCERPT_LENGTH = 200

INVALID_FORMAT_MESSAGE = "The AI returned an invalid data format. Please check the document or try again."

# Fence must be labelled json; bare ``` blocks are left alone
JSON_FENCE_PATTERN = re.compile(r"```json[ \t]*\r?\n(.*?)\r?\n[ \t]*```", re.DOTALL | re.IGNORECASE)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not a valid JSON number")


@dataclass(frozen=True)
class DecodeResult:
    """Outcome of decoding: either transactions or the error that stopped them."""
    transactions: Optional[List[TransactionRecord]] = None
    error: Optional[MalformedResponseError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> List[TransactionRecord]:
        if self.error is not None:
            raise self.error
        return self.transactions or []


def strip_json_fence(text: str) -> str:
    """
    Return the interior of a ```json fenced block, or the trimmed text.

    Args:
        text: Raw response text

    Returns:
        JSON candidate string
    """
    trimmed = text.strip()
    match = JSON_FENCE_PATTERN.search(trimmed)
    return match.group(1) if match else trimmed


def try_decode_response(text: str, strict: bool = True) -> DecodeResult:
    """
    Decode response text into transactions without raising.

    Args:
        text: Raw response text
        strict: Validate every record's fields and types

    Returns:
        DecodeResult holding transactions or a MalformedResponseError
    """
    excerpt = (text or "").strip()[:EXCERPT_LENGTH]
    json_string = strip_json_fence(text or "")

    try:
        parsed = json.loads(json_string, parse_constant=_reject_constant)
    except ValueError as e:
        logger.error(f"JSON parsing error: {e}")
        return DecodeResult(error=MalformedResponseError(
            INVALID_FORMAT_MESSAGE,
            raw_excerpt=excerpt,
            details={"error": str(e)}
        ))

    if not isinstance(parsed, list):
        logger.error(f"Parsed data is not an array (got {type(parsed).__name__})")
        return DecodeResult(error=MalformedResponseError(
            INVALID_FORMAT_MESSAGE,
            raw_excerpt=excerpt,
            details={"error": "Parsed data is not an array.", "parsed_type": type(parsed).__name__}
        ))

    if not strict:
        return DecodeResult(transactions=_construct_unvalidated(parsed))

    transactions: List[TransactionRecord] = []
    for index, item in enumerate(parsed):
        try:
            transactions.append(TransactionRecord.model_validate(item))
        except ValidationError as e:
            logger.error(f"Transaction {index} failed validation: {e}")
            return DecodeResult(error=MalformedResponseError(
                INVALID_FORMAT_MESSAGE,
                raw_excerpt=excerpt,
                details={"error": f"Transaction {index} is invalid", "record_index": index,
                         "validation_errors": e.errors(include_url=False, include_context=False)}
            ))

    return DecodeResult(transactions=transactions)


def decode_response(text: str, strict: bool = True) -> List[TransactionRecord]:
    """
    Decode response text into transactions.

    Raises:
        MalformedResponseError: If the text is not a valid array of transactions
    """
    result = try_decode_response(text, strict=strict)
    transactions = result.unwrap()
    logger.info(f"Decoded {len(transactions)} transaction(s)")
    return transactions


def _construct_unvalidated(items: List[Any]) -> List[TransactionRecord]:
    # Lenient mode: missing fields become None, non-object items are dropped
    transactions = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            logger.warning(f"Skipping transaction {index}: not an object (got {type(item).__name__})")
            continue
        transactions.append(TransactionRecord.model_construct(
            **{name: item.get(name) for name in TransactionRecord.model_fields}
        ))
    return transactions
