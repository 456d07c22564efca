"""Text extraction from uploaded files."""

import io
import logging
import zipfile

from docx import Document as DocxDocument
from docx.opc.exceptions import PackageNotFoundError
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from backend.docchat.errors import UnsupportedFormatError

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024

TEXT_MIME_TYPES = frozenset({"text/plain", "text/markdown", "text/csv", "application/json"})
PDF_MIME_TYPE = "application/pdf"
DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def _normalize_mime(mime_type: str) -> str:
    # "text/plain; charset=utf-8" -> "text/plain"
    return mime_type.split(";", 1)[0].strip().lower()


def _extract_pdf(file_bytes: bytes) -> str:
    try:
        reader = PdfReader(io.BytesIO(file_bytes))
        pages = [page.extract_text() or "" for page in reader.pages]
    except (PyPdfError, ValueError) as e:
        raise UnsupportedFormatError(f"Could not read PDF: {e}") from e

    text = "\n\n".join(page.strip() for page in pages if page.strip())
    if not text:
        logger.warning("PDF contained no extractable text (possibly scanned)")
    return text


def _extract_docx(file_bytes: bytes) -> str:
    """Paragraph text followed by table rows, cells joined with ' | '."""
    try:
        doc = DocxDocument(io.BytesIO(file_bytes))
    except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
        raise UnsupportedFormatError(f"Could not read DOCX: {e}") from e

    parts = [para.text for para in doc.paragraphs if para.text.strip()]

    for table in doc.tables:
        rows = []
        for row in table.rows:
            cells = [cell.text.strip().replace("\n", " ") for cell in row.cells]
            if any(cells):
                rows.append(" | ".join(cells))
        if rows:
            parts.append("\n".join(rows))

    return "\n\n".join(parts)


def extract_text(file_bytes: bytes, mime_type: str) -> str:
    """Extract plain text from an uploaded file.

    Args:
        file_bytes: Raw file content
        mime_type: Declared content type

    Returns:
        Extracted text (may be blank, e.g. for a scanned PDF)

    Raises:
        UnsupportedFormatError: Unknown type, oversized file or unreadable content
    """
    if len(file_bytes) > MAX_UPLOAD_BYTES:
        raise UnsupportedFormatError(
            f"File size {len(file_bytes)} exceeds the {MAX_UPLOAD_BYTES} byte limit"
        )

    mime = _normalize_mime(mime_type)

    if mime in TEXT_MIME_TYPES:
        try:
            return file_bytes.decode("utf-8")
        except UnicodeDecodeError as e:
            raise UnsupportedFormatError(f"{mime} content is not valid UTF-8") from e

    if mime == PDF_MIME_TYPE:
        return _extract_pdf(file_bytes)

    if mime == DOCX_MIME_TYPE:
        return _extract_docx(file_bytes)

    raise UnsupportedFormatError(f"Unsupported file type: {mime_type}")
