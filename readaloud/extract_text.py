"""
Document Text Extraction Module

Turns uploaded files into plain text for the player. Supported formats:
plain text, HTML, PDF, DOCX, EPUB and (experimentally) MOBI.

The player never sees file bytes or containers: every extractor returns a
single string, wrapped in a Document titled after the file.
"""

import posixpath
import re
import xml.etree.ElementTree as ET
import zipfile
from pathlib import Path
from typing import List, Optional, Tuple

import docx
import fitz  # PyMuPDF
from bs4 import BeautifulSoup

from readaloud.playback.player import Document
from readaloud.utils import logger

SUPPORTED_EXTENSIONS = {".txt", ".html", ".htm", ".pdf", ".docx", ".epub", ".mobi"}

CONTAINER_NS = "urn:oasis:names:tc:opendocument:xmlns:container"
OPF_NS = "http://www.idpf.org/2007/opf"

MOBI_MIN_CHARS = 50


class UnsupportedFormatError(ValueError):
    """Raised for file extensions the reader cannot extract."""
    pass


class ExtractionError(RuntimeError):
    """Raised when a file of a supported format cannot be read."""
    pass


class PDFExtractor:
    """Extract text from PDF files, one page at a time."""

    def __init__(self, pdf_path: Path):
        self.pdf_path = Path(pdf_path)
        if not self.pdf_path.exists():
            raise FileNotFoundError(f"PDF not found: {pdf_path}")

        try:
            self.doc = fitz.open(self.pdf_path)
        except Exception as e:
            raise ExtractionError(f"Failed to parse PDF file: {e}") from e
        self.total_pages = len(self.doc)

    def extract_all(self) -> str:
        """
        Extract all text from the PDF.

        Returns:
            Page texts separated by blank lines
        """
        logger.info(f"Extracting text from {self.total_pages} pages...")

        text_parts = []
        for page in self.doc:
            text = self._clean_page_text(page.get_text("text"))
            if text:
                text_parts.append(text)

        return "\n\n".join(text_parts)

    def _clean_page_text(self, text: str) -> str:
        """Clean extracted text from a single page."""
        # Common ligatures
        for old, new in (("ﬁ", "fi"), ("ﬂ", "fl"), ("ﬀ", "ff"), ("ﬃ", "ffi"), ("ﬄ", "ffl")):
            text = text.replace(old, new)

        text = text.replace("\f", "\n")
        text = re.sub(r"[ \t]+", " ", text)

        # Standalone page numbers
        text = re.sub(r"^\s*\d+\s*$", "", text, flags=re.MULTILINE)
        text = re.sub(r"\n{3,}", "\n\n", text)

        return text.strip()

    def close(self) -> None:
        """Close the PDF document."""
        self.doc.close()

    def __enter__(self) -> "PDFExtractor":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def extract_txt(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="replace")


def html_to_text(markup) -> str:
    """Visible text of an HTML document, without scripts and styles."""
    soup = BeautifulSoup(markup, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    body = soup.body or soup
    return body.get_text()


def extract_html(path: Path) -> str:
    return html_to_text(extract_txt(path))


def extract_pdf(path: Path) -> str:
    with PDFExtractor(path) as extractor:
        return extractor.extract_all()


def extract_docx(path: Path) -> str:
    """Paragraph texts of a DOCX file, separated by blank lines."""
    try:
        document = docx.Document(path)
    except Exception as e:
        raise ExtractionError(f"Failed to parse DOCX file: {e}") from e

    logger.info(f"Extracting text from {len(document.paragraphs)} paragraphs...")
    parts = [p.text.strip() for p in document.paragraphs]
    return "\n\n".join(p for p in parts if p)


def _epub_spine(archive: zipfile.ZipFile) -> List[str]:
    """Content documents in reading order, from the OPF spine."""
    container = ET.fromstring(archive.read("META-INF/container.xml"))
    rootfile = container.find(f".//{{{CONTAINER_NS}}}rootfile")
    if rootfile is None:
        return []

    opf_path = rootfile.get("full-path", "")
    opf = ET.fromstring(archive.read(opf_path))
    base = posixpath.dirname(opf_path)

    manifest = {
        item.get("id"): item.get("href", "")
        for item in opf.iter(f"{{{OPF_NS}}}item")
    }
    spine = []
    for itemref in opf.iter(f"{{{OPF_NS}}}itemref"):
        href = manifest.get(itemref.get("idref"))
        if href:
            spine.append(posixpath.normpath(posixpath.join(base, href)))
    return spine


def extract_epub(path: Path) -> str:
    """
    Text of an EPUB, in spine order when the package file allows it.

    Falls back to all HTML members in name order, then to plain-text members.
    """
    try:
        archive = zipfile.ZipFile(path)
    except zipfile.BadZipFile as e:
        raise ExtractionError(f"Failed to parse EPUB file: {e}") from e

    with archive:
        names = set(archive.namelist())
        try:
            members = [name for name in _epub_spine(archive) if name in names]
        except (KeyError, ET.ParseError):
            members = []
        if not members:
            members = sorted(n for n in names if re.search(r"\.(xhtml|html|htm)$", n, re.I))

        parts = [html_to_text(archive.read(name)) for name in members]
        text = "\n\n".join(p.strip() for p in parts if p.strip())

        if not text:
            txt_members = sorted(n for n in names if n.lower().endswith(".txt"))
            text = "\n\n".join(
                archive.read(n).decode("utf-8", "replace").strip() for n in txt_members
            )

    if not text.strip():
        raise ExtractionError("Could not extract readable text from EPUB.")
    return text


def extract_mobi(path: Path) -> str:
    """
    Best-effort MOBI text: decode and strip binary noise.

    Real MOBI parsing needs the PalmDOC container; this only works for
    uncompressed books.
    """
    logger.warning("MOBI parsing is experimental and may not work for all files.")
    text = path.read_bytes().decode("utf-8", errors="replace")
    text = re.sub(r"[\x00-\x1F\x7F-\x9F]", "", text)
    text = re.sub(r"[\uFFFD\u200B]", "", text)
    text = re.sub(r"\s+", " ", text).strip()

    if len(text) < MOBI_MIN_CHARS:
        raise ExtractionError(
            "MOBI parsing yielded very little content. File might be encrypted or unsupported."
        )
    return text


_EXTRACTORS = {
    ".txt": extract_txt,
    ".html": extract_html,
    ".htm": extract_html,
    ".pdf": extract_pdf,
    ".docx": extract_docx,
    ".epub": extract_epub,
    ".mobi": extract_mobi,
}


def extract_text(path: Path) -> str:
    """
    Extract plain text from a supported file.

    Args:
        path: File to read

    Returns:
        The document text (may be empty)

    Raises:
        FileNotFoundError: If the file does not exist
        UnsupportedFormatError: If the extension is not supported
        ExtractionError: If the file cannot be parsed
    """
    path = Path(path)
    suffix = path.suffix.lower()
    extractor = _EXTRACTORS.get(suffix)
    if extractor is None:
        raise UnsupportedFormatError(
            f"Unsupported file format: '{suffix}'. "
            f"Supported: {', '.join(sorted(SUPPORTED_EXTENSIONS))}"
        )
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    return extractor(path)


def load_document(path: Path, title: Optional[str] = None) -> Document:
    """Extract a file into a Document titled after the file name."""
    path = Path(path)
    text = extract_text(path)
    logger.success(f"Extracted {len(text):,} characters from {path.name}")
    return Document(text=text, title=title or path.name)


def document_stats(text: str) -> Tuple[int, int]:
    """Return (characters, words) for a text."""
    return len(text), len(text.split())
