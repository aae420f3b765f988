"""Tests for text extraction and normalization."""

import io
from unittest.mock import MagicMock, patch

import pytest
from docx import Document as DocxDocument

from docgraph.services.ingestion.extractor import TextExtractor, normalize_text
from docgraph.utils.exceptions import EmptyContentError, ExtractionError, UnsupportedFormatError


class TestNormalizeText:
    """Whitespace normalization applied to every extraction."""

    def test_unifies_line_endings(self):
        assert normalize_text("a\r\nb\rc") == "a\nb\nc"

    def test_collapses_blank_lines_and_spaces(self):
        assert normalize_text("a\n\n\n\n\nb") == "a\n\nb"
        assert normalize_text("a  \t  b") == "a b"

    def test_trims(self):
        assert normalize_text("  \n hello \n\n ") == "hello"

    def test_idempotent(self):
        once = normalize_text("x \r\n\r\n\r\n  y\t\tz  ")
        assert normalize_text(once) == once


class TestTextExtractor:
    """Strategy selection and fallbacks."""

    @pytest.fixture
    def extractor(self) -> TextExtractor:
        return TextExtractor(ocr_enabled=False)

    def test_plain_text_utf8(self, extractor):
        result = extractor.extract_from_bytes("Café  au lait\n\n\n\nbis".encode("utf-8"), "notes.txt")
        assert result.text == "Café au lait\n\nbis"
        assert result.file_type == "text"
        assert result.metadata["encoding"] == "utf-8"

    def test_latin1_fallback(self, extractor):
        result = extractor.extract_from_bytes("naïve résumé".encode("latin-1"), "legacy.txt")
        assert result.text == "naïve résumé"
        assert result.metadata["encoding"] == "latin-1"

    def test_code_files_are_text(self, extractor):
        result = extractor.extract_from_bytes(b"def f():\n    return 1\n", "module.py")
        assert result.file_type == "code"
        assert "return 1" in result.text

    def test_unknown_extension_decoded_as_text(self, extractor):
        assert extractor.file_type_for("README") == "text"

    def test_unsupported_format_rejected(self, extractor):
        assert not extractor.is_supported("photo.PNG")
        with pytest.raises(UnsupportedFormatError):
            extractor.extract_from_bytes(b"\x89PNG", "photo.png")

    def test_whitespace_only_is_empty(self, extractor):
        with pytest.raises(EmptyContentError):
            extractor.extract_from_bytes(b"   \n\n\t ", "blank.txt")

    def test_docx_paragraphs_and_tables(self, extractor):
        document = DocxDocument()
        document.add_paragraph("Quarterly report")
        table = document.add_table(rows=1, cols=2)
        table.rows[0].cells[0].text = "Revenue"
        table.rows[0].cells[1].text = "42"
        buffer = io.BytesIO()
        document.save(buffer)

        result = extractor.extract_from_bytes(buffer.getvalue(), "report.docx")
        assert "Quarterly report" in result.text
        assert "Revenue | 42" in result.text
        assert result.extraction_method == "direct"

    def test_corrupt_pdf_raises_extraction_error(self, extractor):
        with pytest.raises(ExtractionError):
            extractor.extract_from_bytes(b"not a pdf at all", "broken.pdf")


class TestPdfOcrFallback:
    """OCR runs only when the PDF has no text layer."""

    @staticmethod
    def _fake_pdf(page_texts):
        doc = MagicMock()
        doc.metadata = {}
        doc.__len__.return_value = len(page_texts)
        pages = []
        for text in page_texts:
            page = MagicMock()
            page.get_text.return_value = text
            page.get_pixmap.return_value.tobytes.return_value = b"png-bytes"
            pages.append(page)
        doc.__getitem__.side_effect = lambda index: pages[index]
        return doc

    def test_text_layer_skips_ocr(self):
        extractor = TextExtractor(ocr_enabled=True)
        with patch("docgraph.services.ingestion.extractor.fitz.open", return_value=self._fake_pdf(["Hello"])), \
                patch.object(extractor, "_ocr_pages") as ocr:
            result = extractor.extract_from_bytes(b"%PDF", "doc.pdf")
        assert result.text == "Hello"
        assert result.extraction_method == "direct"
        ocr.assert_not_called()

    def test_image_only_pdf_uses_ocr(self):
        extractor = TextExtractor(ocr_enabled=True)
        reader = MagicMock()
        reader.readtext.side_effect = [["Scanned page one"], RuntimeError("bad page")]
        extractor._ocr_reader = reader

        with patch("docgraph.services.ingestion.extractor.fitz.open", return_value=self._fake_pdf(["", " "])):
            result = extractor.extract_from_bytes(b"%PDF", "scan.pdf")

        assert result.extraction_method == "ocr"
        assert result.text == "Scanned page one"
        assert result.page_count == 2

    def test_image_only_pdf_without_ocr_is_empty(self):
        extractor = TextExtractor(ocr_enabled=False)
        with patch("docgraph.services.ingestion.extractor.fitz.open", return_value=self._fake_pdf([""])):
            with pytest.raises(EmptyContentError):
                extractor.extract_from_bytes(b"%PDF", "scan.pdf")
