"""Document ingestion pipeline: Extract -> Split -> Embed -> Store."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from pypdf.errors import PyPdfError

from .config import config
from .document_processing import DocumentLoader, TextChunker
from .embeddings import EmbeddingService, EmbeddingUnavailable
from .models import DocumentChunk, IngestionResult, normalize_owner_id

if TYPE_CHECKING:
    from .vector_store import BaseSQLiteStore

logger = config.get_logger(__name__)


class IngestionPipeline:
    """Indexes uploaded documents for a single owner."""

    def __init__(
        self,
        embedding_service: EmbeddingService,
        vector_store: BaseSQLiteStore,
        chunker: TextChunker | None = None,
        loader: type[DocumentLoader] = DocumentLoader,
    ) -> None:
        """Initialize the pipeline with its collaborators.

        Args:
            embedding_service: Service used to embed each chunk.
            vector_store: Bootstrapped vector store receiving the chunks.
            chunker: Text chunker. If None, uses config.CHUNK_SIZE and
                config.CHUNK_OVERLAP.
            loader: Page extractor for uploaded files.
        """
        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.chunker = chunker or TextChunker(
            chunk_size=config.CHUNK_SIZE, overlap=config.CHUNK_OVERLAP
        )
        self.loader = loader

    def build_chunks(
        self,
        file_path: Path,
        owner_id: str,
        source_name: str,
    ) -> tuple[list[DocumentChunk], int, int]:
        """Extract, split and embed a document, one chunk at a time.

        Chunks whose embedding fails are skipped and counted.

        Returns:
            Tuple of (embedded chunks, failed count, total chunk count).
        """
        pages = self.loader.extract_pages(file_path)
        chunks: list[DocumentChunk] = []
        failed = 0
        total = 0

        for page in pages:
            texts = self.chunker.split(page.text)
            total += len(texts)
            logger.info(
                "Processing page %d/%d - %d chunks",
                page.page_number,
                len(pages),
                len(texts),
            )

            for chunk_number, text in enumerate(texts, start=1):
                try:
                    embedding = self.embedding_service.embed(text)
                except EmbeddingUnavailable as e:
                    failed += 1
                    logger.warning(
                        "Skipping chunk %d on page %d: %s",
                        chunk_number,
                        page.page_number,
                        e,
                    )
                    continue

                chunks.append(
                    DocumentChunk(
                        owner_id=owner_id,
                        source=source_name,
                        page=page.page_number,
                        chunk_index=chunk_number,
                        content=text,
                        embedding=embedding,
                    )
                )

        return chunks, failed, total

    def ingest(
        self,
        file_path: Path,
        owner_id: str,
        source_name: str | None = None,
    ) -> IngestionResult:
        """Index an uploaded file for an owner and delete the file afterwards.

        Args:
            file_path: Temporary path of the uploaded file.
            owner_id: Raw owner identifier; normalized before storage.
            source_name: Display name of the document. If None, uses the
                file name.

        Returns:
            IngestionResult, successful when at least one chunk was stored.
        """
        file_path = Path(file_path)
        source_name = source_name or file_path.name
        owner = normalize_owner_id(owner_id)
        logger.info("Starting ingestion of %s for %s", source_name, owner)

        try:
            chunks, failed, total = self.build_chunks(file_path, owner, source_name)
            stored = self.vector_store.upsert(chunks) if chunks else 0
        except (OSError, ValueError, RuntimeError, PyPdfError) as e:
            logger.exception("Ingestion of %s failed", source_name)
            return IngestionResult(
                success=False,
                message=f"Error while processing the file: {e}",
                file_name=source_name,
            )
        finally:
            self._release(file_path)

        logger.info(
            "Ingestion summary for %s: %d total, %d embedded, %d failed, %d stored",
            source_name,
            total,
            len(chunks),
            failed,
            stored,
        )

        if stored == 0:
            if total == 0:
                message = "No text could be extracted from the file"
            else:
                message = (
                    f"No chunks were indexed: {len(chunks)} embedded, "
                    f"{failed} failed, {total} total"
                )
            return IngestionResult(
                success=False,
                message=message,
                chunk_count=0,
                file_name=source_name,
                failed_count=failed,
                total_count=total,
            )

        return IngestionResult(
            success=True,
            message=(
                f"File processed successfully: {stored} chunks indexed "
                f"({len(chunks)} embedded, {failed} failed, {total} total)"
            ),
            chunk_count=stored,
            file_name=source_name,
            failed_count=failed,
            total_count=total,
        )

    @staticmethod
    def _release(file_path: Path) -> None:
        """Delete the temporary upload, logging instead of raising."""
        try:
            file_path.unlink(missing_ok=True)
        except OSError:
            logger.exception("Could not delete temporary file %s", file_path)
        else:
            logger.debug("Temporary file %s deleted", file_path)
