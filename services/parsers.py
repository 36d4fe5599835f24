import io
import logging
import re
import zipfile
import zlib

from lxml import etree
from pypdf import PdfReader

from config import MIN_TEXT_LENGTH
from schemas.upload import FileKind
from services.errors import ExtractionFailure

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
PPTX_MIME = "application/vnd.openxmlformats-officedocument.presentationml.presentation"

SLIDE_ENTRY_RE = re.compile(r"^ppt/slides/slide(\d+)\.xml$")
DRAWINGML_NS = {"a": "http://schemas.openxmlformats.org/drawingml/2006/main"}

# ZipFile.read raises these for corrupt deflate data, truncated entries, unsupported
# compression and encrypted entries; lxml raises XMLSyntaxError for broken slide XML
SLIDE_READ_ERRORS = (
    zipfile.BadZipFile,
    zlib.error,
    EOFError,
    NotImplementedError,
    RuntimeError,
    etree.XMLSyntaxError,
)


def detect_file_kind(filename: str, mime: str | None = None) -> FileKind:
    """Classifies an upload by extension first, then by declared content type."""
    lower = (filename or "").lower()
    if lower.endswith(".pdf"):
        return FileKind.PDF
    if lower.endswith(".pptx"):
        return FileKind.PPTX
    if mime == PDF_MIME:
        return FileKind.PDF
    if mime == PPTX_MIME:
        return FileKind.PPTX
    return FileKind.UNKNOWN


def extract_text_from_pdf(data: bytes) -> str:
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
    except Exception as e:
        raise ExtractionFailure(f"Could not read PDF: {e}") from e
    return "\n".join(pages).strip()


def _slide_number(entry_name: str) -> int:
    return int(SLIDE_ENTRY_RE.match(entry_name).group(1))


def _slide_text(xml_content: bytes) -> str:
    root = etree.fromstring(xml_content)
    runs = [node.text or "" for node in root.xpath("//a:t", namespaces=DRAWINGML_NS)]
    return "\n".join(runs).strip()


def extract_text_from_pptx(data: bytes) -> str:
    """Pulls the text runs out of every slide, in slide order.

    Slides are ordered by the number in their file name (slide2 before
    slide10). Runs within a slide are newline separated, slides are separated
    by a blank line, and slides without text are skipped.
    """
    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as e:
        raise ExtractionFailure(f"Could not read PPTX archive: {e}") from e

    with archive:
        slide_entries = sorted(
            (name for name in archive.namelist() if SLIDE_ENTRY_RE.match(name)),
            key=_slide_number,
        )
        texts: list[str] = []
        for entry in slide_entries:
            try:
                slide_text = _slide_text(archive.read(entry))
            except SLIDE_READ_ERRORS as e:
                raise ExtractionFailure(f"Corrupt slide entry {entry}: {e}") from e
            if slide_text:
                texts.append(slide_text)

    logger.debug("Extracted text from %d of %d slides", len(texts), len(slide_entries))
    return "\n\n".join(texts).strip()


def extract_text(kind: FileKind, data: bytes) -> str:
    """Extracts text for a detected kind and rejects near-empty results."""
    if kind == FileKind.PDF:
        text = extract_text_from_pdf(data)
    elif kind == FileKind.PPTX:
        text = extract_text_from_pptx(data)
    else:
        raise ExtractionFailure(f"No extractor for file kind '{kind.value}'")

    text = text.strip()
    if len(text) < MIN_TEXT_LENGTH:
        raise ExtractionFailure("Could not extract meaningful text from the file.")
    return text
