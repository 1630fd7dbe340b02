"""
Deed document normalization.

Recorder sites serve PDFs, (multi-page) TIFFs, or one image per page. Every
variant is turned into a single PDF here so callers only ever see one format.
"""

from __future__ import annotations

import hashlib
from typing import Sequence

import fitz  # PyMuPDF
from loguru import logger

from deedscraper.exceptions import DownloadFailed
from deedscraper.models import DeedDocument

PDF_MAGIC = b"%PDF"
TIFF_MAGICS = (b"II*\x00", b"MM\x00*")
PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
JPEG_MAGIC = b"\xff\xd8\xff"

IMAGE_FORMATS = {"tiff", "png", "jpeg"}


def sniff_format(data: bytes) -> str | None:
    """Identify a payload by its leading bytes."""
    if not data:
        return None
    # Some clerk servers prepend whitespace before the PDF header
    if data.lstrip()[:4] == PDF_MAGIC:
        return "pdf"
    if data[:4] in TIFF_MAGICS:
        return "tiff"
    if data[:8] == PNG_MAGIC:
        return "png"
    if data[:3] == JPEG_MAGIC:
        return "jpeg"
    return None


def content_hash(*parts: bytes) -> str:
    digest = hashlib.sha256()
    for part in parts:
        digest.update(part)
    return digest.hexdigest()


def pdf_page_count(data: bytes) -> int:
    try:
        with fitz.open(stream=data, filetype="pdf") as doc:
            pages = doc.page_count
    except RuntimeError as e:
        raise DownloadFailed(f"Corrupt PDF: {e}") from e
    if pages == 0:
        raise DownloadFailed("Corrupt PDF: no pages")
    return pages


def merge_to_pdf(parts: Sequence[bytes]) -> tuple[bytes, int]:
    """Concatenate PDFs and images (in order) into one PDF.

    Returns the PDF bytes and its page count.
    """
    out = fitz.open()
    try:
        for index, part in enumerate(parts, start=1):
            fmt = sniff_format(part)
            if fmt is None:
                raise DownloadFailed(f"Page {index} is not a PDF or image (starts with {part[:16]!r})")
            try:
                if fmt == "pdf":
                    with fitz.open(stream=part.lstrip(), filetype="pdf") as src:
                        out.insert_pdf(src)
                else:
                    with fitz.open(stream=part, filetype=fmt) as img:
                        pdf_bytes = img.convert_to_pdf()
                    with fitz.open(stream=pdf_bytes, filetype="pdf") as src:
                        out.insert_pdf(src)
            except RuntimeError as e:
                raise DownloadFailed(f"Page {index} could not be decoded: {e}") from e
        if out.page_count == 0:
            raise DownloadFailed("Document has no pages")
        return out.tobytes(garbage=3, deflate=True), out.page_count
    finally:
        out.close()


def normalize_document(
    instrument_number: str,
    document_type: str,
    payload: bytes | Sequence[bytes],
) -> DeedDocument:
    """Validate a downloaded artifact and return it as a single-PDF ``DeedDocument``.

    ``payload`` is either one blob (PDF or TIFF or image) or a page-image
    sequence. The content hash is taken over the bytes as served so repeated
    downloads of an unchanged document hash identically.

    Raises:
        DownloadFailed: the payload is empty or not a recognised document
            (typically an HTML error page).
    """
    parts = [payload] if isinstance(payload, (bytes, bytearray)) else list(payload)
    parts = [bytes(p) for p in parts if p]
    if not parts:
        raise DownloadFailed(f"Empty download for instrument {instrument_number}")

    digest = content_hash(*parts)

    if len(parts) == 1:
        data = parts[0]
        fmt = sniff_format(data)
        if fmt is None:
            raise DownloadFailed(
                f"Instrument {instrument_number} is not a PDF/TIFF/image (starts with {data[:16]!r})"
            )
        if fmt == "pdf":
            pdf = data.lstrip()
            pages = pdf_page_count(pdf)
            source_format = "pdf"
        else:
            pdf, pages = merge_to_pdf([data])
            source_format = "tiff" if fmt == "tiff" else "image-sequence"
    else:
        pdf, pages = merge_to_pdf(parts)
        source_format = "image-sequence"

    logger.info(
        "Normalized instrument {} ({} -> pdf, {} pages, {} bytes)",
        instrument_number,
        source_format,
        pages,
        len(pdf),
    )
    return DeedDocument(
        instrument_number=instrument_number,
        document_type=document_type,
        content=pdf,
        page_count=pages,
        content_hash=digest,
        source_format=source_format,
    )


def url_document(instrument_number: str, document_type: str, url: str) -> DeedDocument:
    """A document the site only exposes as a stable link."""
    return DeedDocument(
        instrument_number=instrument_number,
        document_type=document_type,
        url=url,
        media_type="text/uri-list",
        source_format="url",
    )
