"""
Payload assembly: renders every submitted document and flattens the pages
into one ordered batch.
"""
import asyncio
from typing import List, Optional

from core.exceptions import EmptyBatchError
from core.logger import setup_logger
from core.rendering import PageRenderer, ProgressCallback
from core.schema import InputDocument, PayloadBatch

logger = setup_logger(__name__)


def deduplicate_documents(documents: List[InputDocument]) -> List[InputDocument]:
    """
    Drop documents whose name was already seen, keeping the first one.

    Args:
        documents: Documents in submission order

    Returns:
        Documents with unique names, order preserved
    """
    seen = set()
    unique = []
    for document in documents:
        if document.name in seen:
            logger.warning(f"Skipping duplicate document: {document.name}")
            continue
        seen.add(document.name)
        unique.append(document)
    return unique


class PayloadAssembler:
    """Renders documents concurrently and concatenates their pages."""

    def __init__(self, renderer: PageRenderer):
        self.renderer = renderer

    async def assemble(
        self,
        documents: List[InputDocument],
        on_progress: Optional[ProgressCallback] = None
    ) -> PayloadBatch:
        """
        Render all documents into a single payload batch.

        Pages are ordered by document submission order, then page order,
        regardless of which render finishes first. The first failing
        document aborts the batch; results of its siblings are discarded.

        Args:
            documents: Documents in submission order
            on_progress: Optional callback receiving progress labels

        Returns:
            PayloadBatch with every page of every document

        Raises:
            EmptyBatchError: If no pages were produced
        """
        per_document = await asyncio.gather(
            *(self.renderer.render(document, on_progress) for document in documents)
        )

        pages = [page for document_pages in per_document for page in document_pages]
        if not pages:
            raise EmptyBatchError(
                "No processable content found in the selected files.",
                details={"documents": [document.name for document in documents]}
            )

        logger.info(f"Assembled {len(pages)} page(s) from {len(documents)} document(s)")
        return PayloadBatch(pages=pages, document_names=[document.name for document in documents])
