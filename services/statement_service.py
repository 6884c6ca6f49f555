"""
Statement processing service.
Runs the extraction pipeline: render -> assemble -> extract -> decode.
"""
from typing import List, Optional, Protocol

from core.config import Settings, get_settings
from core.exceptions import PipelineError, StatementOCRException
from core.logger import setup_logger
from core.rendering import PageRenderer, ProgressCallback, RenderingBackendProvider
from core.schema import InputDocument, PayloadBatch, TransactionRecord
from llm.client import get_client
from llm.decode import decode_response
from services.payload_service import PayloadAssembler

logger = setup_logger(__name__)


class ExtractionClient(Protocol):
    async def extract(self, batch: PayloadBatch) -> str: ...


class StatementService:
    """Service for extracting transactions from bank statement documents."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        backend_provider: Optional[RenderingBackendProvider] = None,
        client: Optional[ExtractionClient] = None,
    ):
        """
        Initialize statement service.

        Args:
            settings: Application settings (defaults to the global settings)
            backend_provider: Shared PDF rendering backend provider
            client: Extraction client (defaults to the Gemini client singleton)
        """
        self.settings = settings or get_settings()
        self.backend_provider = backend_provider or RenderingBackendProvider()
        self.renderer = PageRenderer(
            self.backend_provider,
            scale=self.settings.pdf_render_scale,
            jpeg_quality=self.settings.jpeg_quality,
        )
        self.assembler = PayloadAssembler(self.renderer)
        self._client = client

    @property
    def client(self) -> ExtractionClient:
        if self._client is None:
            self._client = get_client()
        return self._client

    async def run(
        self,
        documents: List[InputDocument],
        on_progress: Optional[ProgressCallback] = None
    ) -> List[TransactionRecord]:
        """
        Extract transactions from the given documents.

        Stages run strictly in sequence and the first failure stops the run.
        Stage errors reach the caller unchanged; nothing partial is returned.

        Args:
            documents: Documents in submission order
            on_progress: Optional callback receiving human-readable progress labels

        Returns:
            Transactions in the order the service produced them

        Raises:
            StatementOCRException: The typed error of the failing stage
        """
        settled = False

        def report(message: str) -> None:
            # Sibling renders may outlive a failed run; their labels are dropped
            if settled:
                return
            logger.info(message)
            if on_progress is not None:
                on_progress(message)

        try:
            report("Preparing your documents...")
            batch = await self.assembler.assemble(documents, report)

            report("Analyzing transactions with Gemini...")
            text = await self.client.extract(batch)

            report("Finalizing results...")
            transactions = decode_response(text, strict=self.settings.strict_record_validation)

        except StatementOCRException as e:
            logger.error(f"Statement processing failed: {e.message}")
            raise

        except Exception as e:
            logger.error(f"Unexpected error during statement processing: {e}", exc_info=True)
            raise PipelineError(
                "Failed to process the statement. The document might not be a valid "
                "bank statement or there was a network issue.",
                details={"error": str(e), "error_type": type(e).__name__}
            ) from e

        finally:
            settled = True

        logger.info(f"Extracted {len(transactions)} transaction(s) from {len(documents)} document(s)")
        return transactions
