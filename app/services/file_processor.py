"""
Text extraction for study files shared with the assistant.
Supports: PDF, Word (.docx), Markdown and plain text.
"""

import io
from pathlib import Path

import PyPDF2
from docx import Document as WordDocument

from app.core.logging_config import get_logger

MAX_FILE_SIZE = 20 * 1024 * 1024  # 20 MB
SUPPORTED_EXTENSIONS = {'.pdf', '.docx', '.txt', '.md'}

logger = get_logger(__name__)


class FileProcessingError(Exception):
    """Custom exception for file processing errors."""
    pass


def validate_file(file_content: bytes, filename: str) -> None:
    """Validate file size and extension."""
    file_size_mb = len(file_content) / (1024 * 1024)
    logger.debug(f"Validating file: {filename}, size: {file_size_mb:.2f} MB")

    if len(file_content) > MAX_FILE_SIZE:
        logger.warning(f"File too large: {filename} ({file_size_mb:.2f} MB)")
        raise FileProcessingError(
            f"File size exceeds maximum allowed size of {MAX_FILE_SIZE // (1024*1024)} MB"
        )

    ext = Path(filename).suffix.lower()
    if ext not in SUPPORTED_EXTENSIONS:
        logger.warning(f"Unsupported file type: {ext} for file {filename}")
        raise FileProcessingError(
            f"Unsupported file type: {ext or 'none'}. Supported: {', '.join(sorted(SUPPORTED_EXTENSIONS))}"
        )


def extract_text_from_pdf(file_content: bytes) -> str:
    """Extract text from PDF file."""
    try:
        pdf_reader = PyPDF2.PdfReader(io.BytesIO(file_content))
        text_parts = []
        logger.debug(f"Processing PDF with {len(pdf_reader.pages)} pages")
        for page in pdf_reader.pages:
            text = page.extract_text()
            if text:
                text_parts.append(text)
        return "\n\n".join(text_parts)
    except Exception as e:
        logger.error(f"PDF extraction failed: {str(e)}")
        raise FileProcessingError(f"Failed to extract text from PDF: {str(e)}")


def extract_text_from_docx(file_content: bytes) -> str:
    """Extract paragraphs and table rows from a Word document (.docx)."""
    try:
        doc = WordDocument(io.BytesIO(file_content))
        text_parts = [p.text for p in doc.paragraphs if p.text.strip()]
        for table in doc.tables:
            for row in table.rows:
                row_text = [cell.text.strip() for cell in row.cells if cell.text.strip()]
                if row_text:
                    text_parts.append(" | ".join(row_text))
        return "\n\n".join(text_parts)
    except Exception as e:
        raise FileProcessingError(f"Failed to extract text from Word document: {str(e)}")


def extract_text_from_text_file(file_content: bytes) -> str:
    for encoding in ('utf-8', 'utf-16', 'latin-1'):
        try:
            return file_content.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise FileProcessingError("Unable to decode text file with any supported encoding")


def process_file(file_content: bytes, filename: str) -> str:
    """
    Extract the text content of a study file.

    Raises:
        FileProcessingError: If the file is invalid or cannot be read
    """
    logger.info(f"Processing file: {filename}")
    validate_file(file_content, filename)

    ext = Path(filename).suffix.lower()
    if ext == '.pdf':
        return extract_text_from_pdf(file_content)
    if ext == '.docx':
        return extract_text_from_docx(file_content)
    return extract_text_from_text_file(file_content)


def get_supported_formats() -> dict:
    return {
        "documents": sorted(SUPPORTED_EXTENSIONS),
        "max_file_size_mb": MAX_FILE_SIZE // (1024 * 1024),
    }
