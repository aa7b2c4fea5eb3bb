"""Page-level operations on rendered exam PDFs."""

import io

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PdfReadError

from errors import BadRequest, RenderError


def _read(pdf_bytes: bytes) -> PdfReader:
    try:
        return PdfReader(io.BytesIO(pdf_bytes))
    except (PdfReadError, ValueError) as e:
        raise RenderError(f"Could not read PDF: {e}") from e


def count_pages(pdf_bytes: bytes) -> int:
    return len(_read(pdf_bytes).pages)


def extract_first_page(pdf_bytes: bytes) -> bytes:
    """Return a new PDF holding only the first page.

    Raises:
        BadRequest: If the document has no pages.
        RenderError: If the bytes are not a readable PDF.
    """
    reader = _read(pdf_bytes)
    if len(reader.pages) == 0:
        raise BadRequest("PDF has no content")
    writer = PdfWriter()
    writer.add_page(reader.pages[0])
    buf = io.BytesIO()
    writer.write(buf)
    return buf.getvalue()
