"""
Pydantic models for documents, page payloads and extracted transactions.
"""
import base64
import mimetypes
from pathlib import Path
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

from core.exceptions import UnreadableFileError

PDF_MEDIA_TYPE = "application/pdf"

# Labels offered to the model; any other category text is kept verbatim
CATEGORIES = (
    "Groceries",
    "Dining",
    "Salary",
    "Utilities",
    "Transportation",
    "Shopping",
    "Bills",
    "Entertainment",
    "Other",
)

_CATEGORY_LOOKUP = {label.lower(): label for label in CATEGORIES}


def normalize_category(v):
    """Map a category onto its canonical label, case-insensitively."""
    if isinstance(v, str):
        return _CATEGORY_LOOKUP.get(v.strip().lower(), v.strip())
    return v


def require_number(v):
    """Amounts must arrive as JSON numbers; strings and booleans are not coerced."""
    if isinstance(v, bool):
        raise ValueError("amount must be a number, not a boolean")
    if not isinstance(v, (int, float)):
        raise ValueError(f"amount must be a number, not {type(v).__name__}")
    return v


class InputDocument(BaseModel):
    """
    A single file supplied by the user: an image or a PDF.

    Bytes come either from ``content`` (uploads held in memory) or from
    ``path`` (files on disk). The pipeline only ever reads them.
    """
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    media_type: str
    content: Optional[bytes] = Field(default=None, repr=False)
    path: Optional[Path] = None

    @field_validator("media_type")
    @classmethod
    def validate_media_type(cls, v: str) -> str:
        v = v.strip().lower()
        if v != PDF_MEDIA_TYPE and not v.startswith("image/"):
            raise ValueError(f"Unsupported media type: {v}. Only PDF and image files are supported.")
        return v

    @property
    def is_pdf(self) -> bool:
        return self.media_type == PDF_MEDIA_TYPE

    @classmethod
    def from_path(cls, path: Path, media_type: Optional[str] = None) -> "InputDocument":
        """Build a document from a file on disk, guessing the media type from its suffix."""
        path = Path(path)
        guessed = media_type or mimetypes.guess_type(path.name)[0] or ""
        return cls(name=path.name, media_type=guessed, path=path)

    def read_bytes(self) -> bytes:
        """
        Read the raw document bytes.

        Raises:
            UnreadableFileError: If no bytes are available or the file cannot be read
        """
        if self.content is not None:
            return self.content
        if self.path is None:
            raise UnreadableFileError(self.name, details={"reason": "no content or path supplied"})
        try:
            return self.path.read_bytes()
        except OSError as e:
            raise UnreadableFileError(
                self.name,
                details={"path": str(self.path), "error": str(e)}
            ) from e


class EncodedPage(BaseModel):
    """One page (or a whole image) as base64 data tagged with its media type."""
    model_config = ConfigDict(frozen=True)

    mime_type: str
    data: str = Field(..., repr=False)

    @classmethod
    def from_bytes(cls, raw: bytes, mime_type: str) -> "EncodedPage":
        return cls(mime_type=mime_type, data=base64.b64encode(raw).decode("ascii"))

    def to_part(self) -> Dict[str, Any]:
        """Gemini inline data request part."""
        return {"inlineData": {"mimeType": self.mime_type, "data": self.data}}


class PayloadBatch(BaseModel):
    """All encoded pages of a submission, in file order then page order."""
    pages: List[EncodedPage] = Field(default_factory=list)
    document_names: List[str] = Field(default_factory=list)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def __len__(self) -> int:
        return len(self.pages)


class TransactionRecord(BaseModel):
    """
    One extracted transaction.

    All five fields are required; empty strings are valid values.
    Negative amounts are debits, positive amounts are credits.
    """
    date: str = Field(..., description="Transaction date in YYYY-MM-DD format.")
    description: str = Field(..., description="The full transaction description or title.")
    amount: Annotated[float, BeforeValidator(require_number)] = Field(
        ...,
        allow_inf_nan=False,
        description="Negative for expenses/debits, positive for deposits/credits."
    )
    category: Annotated[str, BeforeValidator(normalize_category)] = Field(
        ...,
        description="One of the known categories, or free text."
    )
    notes: str = Field(..., description="Any relevant notes, otherwise an empty string.")


class TransactionSummary(BaseModel):
    """Totals over a transaction list."""
    total_transactions: int = 0
    total_income: float = 0.0
    total_spending: float = 0.0
