"""Text flattening for uploaded documents.

PDF text is read from the embedded text layer with pdfminer.six; scanned,
image-only PDFs yield no text (there is no OCR step). HTML is flattened to
plain text with BeautifulSoup once <br> and block-closing tags are turned
into line breaks; character entities are decoded along the way.

Based on pdfminer.six high-level API:
https://pdfminersix.readthedocs.io/en/latest/reference/highlevel.html
"""

import io
import logging
import re

from bs4 import BeautifulSoup
from pdfminer.high_level import extract_text
from pdfminer.layout import LAParams
from pydantic import BaseModel

from intake.normalize.fields import normalize_space

logger = logging.getLogger(__name__)

_LINE_BREAK_TAG = re.compile(r"<\s*br\s*/?>", re.IGNORECASE)
_BLOCK_CLOSE_TAG = re.compile(
    r"</\s*(p|div|li|tr|h1|h2|h3|h4|h5|h6|section|article)\s*>", re.IGNORECASE
)
_ANY_TAG = re.compile(r"<[^>]+>")


class TextLayerResult(BaseModel):
    """Result of reading a PDF text layer.

    Attributes:
        text: Extracted text, pages separated by newlines
        success: Whether the PDF could be read at all
        error: Error message if reading failed
    """

    text: str
    success: bool
    error: str | None = None


def looks_like_html(text: str) -> bool:
    return bool(_ANY_TAG.search(text or ""))


def html_to_text(html: str) -> str:
    """Flatten HTML to text, turning <br> and block-closing tags into newlines."""
    text = _LINE_BREAK_TAG.sub("\n", html or "")
    text = _BLOCK_CLOSE_TAG.sub("\n", text)
    # Inline tags still separate words: <td>Paint</td><td>2</td> -> "Paint 2"
    text = BeautifulSoup(text, "html.parser").get_text(" ")
    return text.replace("\r", "")


def split_lines(text: str) -> list[str]:
    """Split text into whitespace-normalized, non-empty lines in order."""
    normalized = (text or "").replace("\r", "\n")
    return [line for line in (normalize_space(raw) for raw in normalized.split("\n")) if line]


def extract_pdf_text(data: bytes) -> TextLayerResult:
    """Read the text layer of a PDF.

    Args:
        data: Raw PDF bytes

    Returns:
        TextLayerResult; success with empty text means the PDF has no text layer
    """
    if not data:
        return TextLayerResult(text="", success=False, error="PDF file is empty")

    try:
        raw = extract_text(io.BytesIO(data), laparams=LAParams())
    except Exception as e:
        logger.warning(f"PDF text layer extraction failed: {e}")
        return TextLayerResult(text="", success=False, error=f"PDF text extraction failed: {str(e)}")

    # pdfminer separates pages with form feeds
    text = "\n".join(split_lines(raw.replace("\f", "\n")))
    if not text:
        logger.info("No selectable text found in PDF")
    return TextLayerResult(text=text, success=True)
