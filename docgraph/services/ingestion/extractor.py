"""
Text extraction service.

Turns uploaded bytes into normalized text. PDFs are read directly with
PyMuPDF and fall back to page-by-page OCR when no text layer exists; DOCX
files are read with python-docx; everything else is decoded as text.
"""

import io
import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import fitz  # PyMuPDF
from docx import Document as DocxDocument

try:
    import easyocr
except ImportError:
    easyocr = None

from docgraph.core.config import settings
from docgraph.services.ingestion.batching import iter_batches, plan_batches
from docgraph.utils.exceptions import (
    EmptyContentError,
    ExtractionError,
    UnsupportedFormatError,
)
from docgraph.utils.metrics import (
    ocr_pages_processed_total,
    text_extraction_duration_seconds,
)

logger = logging.getLogger(__name__)

_BLANK_LINES_RE = re.compile(r"\n{3,}")
_HORIZONTAL_WS_RE = re.compile(r"[ \t]{2,}")


def normalize_text(text: str) -> str:
    """
    Normalize extracted text.

    Unifies line endings, collapses runs of blank lines to one blank line and
    runs of spaces/tabs to a single space, then trims the result.
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _BLANK_LINES_RE.sub("\n\n", text)
    text = _HORIZONTAL_WS_RE.sub(" ", text)
    return text.strip()


@dataclass
class ExtractedContent:
    """Represents extracted content from a document with metadata."""

    text: str
    file_name: str
    file_type: str
    extraction_method: str
    file_size: Optional[int] = None
    page_count: Optional[int] = None
    extracted_at: datetime = field(default_factory=datetime.utcnow)
    metadata: dict = field(default_factory=dict)

    @property
    def word_count(self) -> int:
        return len(self.text.split())


class TextExtractor:
    """
    Service for extracting text from uploaded files.

    Strategy is selected by extension:
    - ``.pdf``: PyMuPDF text layer, OCR fallback (easyocr) when empty
    - ``.docx``: python-docx paragraphs and table rows
    - known binary formats: rejected with UnsupportedFormatError
    - anything else: UTF-8, Latin-1 on decode failure
    """

    STRUCTURED_EXTENSIONS = {
        ".pdf": "pdf",
        ".docx": "docx",
    }

    CODE_EXTENSIONS = {
        ".py", ".js", ".ts", ".tsx", ".jsx", ".java", ".go", ".rs", ".c", ".h",
        ".cpp", ".hpp", ".cs", ".rb", ".php", ".swift", ".kt", ".scala", ".sh",
        ".sql", ".html", ".css", ".json", ".yaml", ".yml", ".toml", ".xml",
    }

    UNSUPPORTED_EXTENSIONS = {
        ".doc", ".xls", ".xlsx", ".ppt", ".pptx", ".odt", ".rtf",
        ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".tiff", ".webp",
        ".zip", ".tar", ".gz", ".7z", ".rar",
        ".exe", ".dll", ".so", ".bin", ".iso",
        ".mp3", ".mp4", ".wav", ".avi", ".mov",
    }

    def __init__(
        self,
        ocr_enabled: Optional[bool] = None,
        ocr_languages: Optional[List[str]] = None,
        ocr_dpi: Optional[int] = None,
    ):
        self.ocr_enabled = settings.ocr_enabled if ocr_enabled is None else ocr_enabled
        self.ocr_languages = ocr_languages or settings.ocr_languages
        self.ocr_dpi = ocr_dpi or settings.ocr_dpi
        self._ocr_reader = None

    def is_supported(self, file_name: str) -> bool:
        """Check whether a file name maps to an extraction strategy."""
        return Path(file_name).suffix.lower() not in self.UNSUPPORTED_EXTENSIONS

    def file_type_for(self, file_name: str) -> str:
        """Return the file type tag (pdf, docx, code, text) for a file name."""
        ext = Path(file_name).suffix.lower()
        if ext in self.UNSUPPORTED_EXTENSIONS:
            raise UnsupportedFormatError(
                f"Unsupported file type: {ext}",
                {"file_name": file_name, "extension": ext},
            )
        if ext in self.STRUCTURED_EXTENSIONS:
            return self.STRUCTURED_EXTENSIONS[ext]
        if ext in self.CODE_EXTENSIONS:
            return "code"
        return "text"

    def extract_from_bytes(
        self,
        file_bytes: bytes,
        file_name: str,
        mime_type: Optional[str] = None,
    ) -> ExtractedContent:
        """
        Extract normalized text from file bytes.

        Args:
            file_bytes: File content as bytes
            file_name: Name of the file (selects the strategy)
            mime_type: Declared MIME type, recorded in metadata only

        Returns:
            ExtractedContent with text and metadata

        Raises:
            UnsupportedFormatError: If the extension has no strategy
            EmptyContentError: If no text could be recovered
            ExtractionError: If the extractor itself fails
        """
        file_type = self.file_type_for(file_name)
        start_time = time.time()

        try:
            if file_type == "pdf":
                text, page_count, metadata, method = self._extract_pdf(file_bytes)
            elif file_type == "docx":
                text, page_count, metadata = self._extract_docx(file_bytes)
                method = "direct"
            else:
                text, page_count, metadata = self._extract_text(file_bytes)
                method = "text"
        except (UnsupportedFormatError, EmptyContentError, ExtractionError):
            raise
        except Exception as e:
            raise ExtractionError(
                f"Failed to extract text from {file_name}: {str(e)}",
                {"file_name": file_name, "file_type": file_type, "error": str(e)},
            ) from e

        text_extraction_duration_seconds.labels(
            file_type=file_type, method=method
        ).observe(time.time() - start_time)

        if not text:
            raise EmptyContentError(
                f"No text content could be extracted from {file_name}",
                {"file_name": file_name, "file_type": file_type, "method": method},
            )

        if mime_type:
            metadata["mime_type"] = mime_type

        logger.info(
            f"Extracted {len(text)} characters from {file_name} "
            f"(type={file_type}, method={method})"
        )
        return ExtractedContent(
            text=text,
            file_name=file_name,
            file_type=file_type,
            extraction_method=method,
            file_size=len(file_bytes),
            page_count=page_count,
            metadata=metadata,
        )

    def _extract_pdf(self, file_bytes: bytes) -> tuple[str, int, dict, str]:
        """Extract a PDF's text layer, falling back to OCR if it is empty."""
        try:
            doc = fitz.open(stream=file_bytes, filetype="pdf")
        except Exception as e:
            raise ExtractionError(
                f"Failed to open PDF: {str(e)}",
                {"error": str(e)},
            ) from e

        try:
            metadata = {}
            if doc.metadata:
                metadata.update({
                    "title": doc.metadata.get("title", ""),
                    "author": doc.metadata.get("author", ""),
                    "subject": doc.metadata.get("subject", ""),
                    "creation_date": doc.metadata.get("creationDate", ""),
                })
            page_count = len(doc)

            page_texts = [doc[page_num].get_text() for page_num in range(page_count)]
            text = normalize_text("\n\n".join(t for t in page_texts if t.strip()))
            if text:
                return text, page_count, metadata, "direct"

            if not self.ocr_enabled:
                logger.warning("PDF has no text layer and OCR is disabled")
                return "", page_count, metadata, "direct"

            logger.info(f"PDF has no text layer, running OCR over {page_count} pages")
            page_images = [
                doc[page_num].get_pixmap(dpi=self.ocr_dpi).tobytes("png")
                for page_num in range(page_count)
            ]
        finally:
            doc.close()

        ocr_texts = self._ocr_pages(page_images)
        text = normalize_text("\n\n".join(t for t in ocr_texts if t.strip()))
        return text, page_count, metadata, "ocr"

    def _ocr_pages(self, page_images: List[bytes]) -> List[str]:
        """
        Run OCR over rendered pages in bounded batches.

        A page that fails OCR contributes no text; the remaining pages still count.
        """
        reader = self._get_ocr_reader()
        plan = plan_batches(len(page_images))
        results: List[str] = [""] * len(page_images)

        indexed = list(enumerate(page_images))
        with ThreadPoolExecutor(max_workers=plan.batch_size) as executor:
            for batch_number, batch in enumerate(iter_batches(indexed, plan.batch_size)):
                if batch_number and plan.delay_seconds:
                    time.sleep(plan.delay_seconds)
                futures = {
                    page_num: executor.submit(self._ocr_page, reader, image)
                    for page_num, image in batch
                }
                for page_num, future in futures.items():
                    try:
                        results[page_num] = future.result()
                        ocr_pages_processed_total.labels(status="success").inc()
                    except Exception as e:
                        ocr_pages_processed_total.labels(status="error").inc()
                        logger.warning(f"OCR failed for page {page_num + 1}: {str(e)}")
        return results

    @staticmethod
    def _ocr_page(reader, image_bytes: bytes) -> str:
        lines = reader.readtext(image_bytes, detail=0, paragraph=True)
        return "\n".join(lines)

    def _get_ocr_reader(self):
        """Lazily build the easyocr reader (model load is expensive)."""
        if self._ocr_reader is not None:
            return self._ocr_reader
        if easyocr is None:
            raise ExtractionError(
                "easyocr is not installed. Install it with: pip install easyocr",
                {},
            )
        try:
            logger.info(f"Loading OCR reader for languages: {self.ocr_languages}")
            self._ocr_reader = easyocr.Reader(self.ocr_languages, gpu=settings.ocr_gpu)
        except Exception as e:
            raise ExtractionError(
                f"Failed to initialize OCR reader: {str(e)}",
                {"languages": self.ocr_languages, "error": str(e)},
            ) from e
        return self._ocr_reader

    def _extract_docx(self, file_bytes: bytes) -> tuple[str, Optional[int], dict]:
        """Extract paragraphs and table rows from a DOCX file."""
        try:
            doc = DocxDocument(io.BytesIO(file_bytes))
        except Exception as e:
            raise ExtractionError(
                f"Failed to open DOCX: {str(e)}",
                {"error": str(e)},
            ) from e

        metadata = {}
        core_props = doc.core_properties
        if core_props:
            metadata.update({
                "title": core_props.title or "",
                "author": core_props.author or "",
                "subject": core_props.subject or "",
            })

        text_parts = [p.text for p in doc.paragraphs if p.text.strip()]
        for table in doc.tables:
            for row in table.rows:
                row_text = [cell.text.strip() for cell in row.cells if cell.text.strip()]
                if row_text:
                    text_parts.append(" | ".join(row_text))

        return normalize_text("\n\n".join(text_parts)), None, metadata

    def _extract_text(self, file_bytes: bytes) -> tuple[str, Optional[int], dict]:
        """Decode plain text as UTF-8, falling back to Latin-1."""
        try:
            text = file_bytes.decode("utf-8")
            encoding = "utf-8"
        except UnicodeDecodeError:
            text = file_bytes.decode("latin-1")
            encoding = "latin-1"
            logger.debug("UTF-8 decode failed, decoded as Latin-1")
        return normalize_text(text), None, {"encoding": encoding}
