"""Render exam Markdown to an A4 PDF.

Markdown is parsed by markdown-it (CommonMark plus tables) and laid out by
PyMuPDF through markdown_pdf, styled with EXAM_CSS.
"""

import logging
import os
import tempfile

from markdown_pdf import MarkdownPdf, Section

from errors import RenderError

logger = logging.getLogger(__name__)

PAPER_SIZE = "A4"
# 20 mm in points; right/bottom borders are offsets from the far edge
MARGIN_PT = 57
BORDERS = (MARGIN_PT, MARGIN_PT, -MARGIN_PT, -MARGIN_PT)

EXAM_CSS = """
html, body { font-family: "Helvetica Neue", Arial, sans-serif; }
h1, h2, h3 { color: #0f172a; }
code { background-color: #f1f5f9; padding: 0.2em 0.4em; border-radius: 4px; }
pre { background-color: #f1f5f9; padding: 8px; }
table { border-collapse: collapse; width: 100%; }
table, th, td { border: 1px solid #cbd5f5; padding: 8px; }
"""


def _build_document(markdown: str, title: str) -> MarkdownPdf:
    pdf = MarkdownPdf(toc_level=0)
    pdf.add_section(
        Section(markdown, toc=False, paper_size=PAPER_SIZE, borders=BORDERS),
        user_css=EXAM_CSS,
    )
    pdf.meta["title"] = title
    return pdf


def render_pdf_from_markdown(markdown: str, title: str = "Mock exam") -> bytes:
    """Convert exam Markdown into PDF bytes.

    Raises:
        RenderError: If the conversion failed or produced no output.
    """
    try:
        pdf = _build_document(markdown, title)
        with tempfile.TemporaryDirectory() as tmp_dir:
            out_path = os.path.join(tmp_dir, "exam.pdf")
            pdf.save(out_path)
            with open(out_path, "rb") as f:
                data = f.read()
    except (RuntimeError, ValueError, OSError) as e:
        raise RenderError(f"Markdown to PDF conversion failed: {e}") from e
    if not data:
        raise RenderError("Markdown to PDF conversion failed.")
    logger.info("Rendered PDF: %d bytes", len(data))
    return data
