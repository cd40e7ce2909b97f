"""Document text extraction and sentence-aligned text chunking."""

from pathlib import Path

import pypdf

from .config import config
from .models import PageText

logger = config.get_logger(__name__)

SENTENCE_ENDINGS = (". ", ".\n", "? ", "?\n", "! ", "!\n")
SENTENCE_LOOKBACK = 100


class DocumentLoader:
    """Extracts per-page text from PDF and TXT documents."""

    SUPPORTED_EXTENSIONS = frozenset({".pdf", ".txt"})

    @staticmethod
    def load_pdf_pages(file_path: Path) -> list[PageText]:
        """Extract the text of every page in a PDF file.

        Returns:
            One PageText per page, numbered from 1.
        """
        try:
            with file_path.open("rb") as file:
                pdf_reader = pypdf.PdfReader(file)
                pages = [
                    PageText(
                        page_number=page_num + 1,
                        text=" ".join((page.extract_text() or "").split()),
                    )
                    for page_num, page in enumerate(pdf_reader.pages)
                ]
        except Exception:
            logger.exception("Error loading PDF %s", file_path)
            raise
        else:
            logger.info("Extracted %d pages from %s", len(pages), file_path.name)
            return pages

    @staticmethod
    def load_txt_pages(file_path: Path) -> list[PageText]:
        """Load a TXT file as a single page.

        Returns:
            A one-element list holding the whole file as page 1.
        """
        try:
            with file_path.open(encoding="utf-8") as file:
                text = file.read()
        except Exception:
            logger.exception("Error loading TXT %s", file_path)
            raise
        else:
            return [PageText(page_number=1, text=text)]

    @classmethod
    def extract_pages(cls, file_path: Path) -> list[PageText]:
        """Extract page texts based on file extension.

        Args:
            file_path: Path to the document file.

        Returns:
            The extracted pages in document order.

        Raises:
            ValueError: If the file type is not supported.
        """
        file_ext = file_path.suffix.lower()
        if file_ext == ".pdf":
            return cls.load_pdf_pages(file_path)
        if file_ext == ".txt":
            return cls.load_txt_pages(file_path)
        msg = f"Unsupported file type: {file_ext}"
        raise ValueError(msg)


class TextChunker:
    """Splits text into overlapping chunks that prefer sentence boundaries."""

    def __init__(self, chunk_size: int = 500, overlap: int = 100) -> None:
        """Initialize the TextChunker with chunk size and overlap.

        Args:
            chunk_size: The maximum size of each text chunk.
            overlap: The number of characters shared by consecutive chunks.

        Raises:
            ValueError: If the sizes cannot produce forward progress.
        """
        if chunk_size <= 0:
            msg = "chunk_size must be positive"
            raise ValueError(msg)
        if overlap < 0 or overlap >= chunk_size:
            msg = "overlap must be in [0, chunk_size)"
            raise ValueError(msg)
        self.chunk_size = chunk_size
        self.overlap = overlap

    @staticmethod
    def _sentence_cut(text: str, start: int, end: int) -> int:
        """Move a cut point back to the rightmost sentence end near it.

        Only the last ``SENTENCE_LOOKBACK`` characters of the window are
        scanned; the cut lands just after the punctuation and its whitespace.

        Returns:
            The adjusted end index, or ``end`` when no sentence end is found.
        """
        window_start = max(start, end - SENTENCE_LOOKBACK)
        tail = text[window_start:end]
        best = max(tail.rfind(marker) for marker in SENTENCE_ENDINGS)
        if best == -1:
            return end
        return window_start + best + 2

    def split(
        self,
        text: str,
        chunk_size: int | None = None,
        overlap: int | None = None,
    ) -> list[str]:
        """Split text into overlapping, sentence-aligned chunks.

        Returns:
            The chunks in text order; empty when ``text`` is empty.
        """
        chunk_size = self.chunk_size if chunk_size is None else chunk_size
        overlap = self.overlap if overlap is None else overlap
        if not text:
            return []

        chunks: list[str] = []
        text_length = len(text)
        start = 0

        while start < text_length:
            end = min(start + chunk_size, text_length)
            if end < text_length:
                end = self._sentence_cut(text, start, end)

            chunks.append(text[start:end])
            if end >= text_length:
                break

            next_start = end - overlap
            if next_start <= start:
                next_start = end
            start = next_start

            # A short tail is kept whole instead of spawning another window.
            if start + chunk_size > text_length:
                chunks.append(text[start:])
                break

        logger.debug("Text split into %d chunks", len(chunks))
        return chunks
