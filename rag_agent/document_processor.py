"""
Text extraction for PDFs, Word documents, emails and plain-text files.
"""

import email
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Union

import pdfplumber
import pypdf
from docx import Document as DocxDocument

from .exceptions import ExtractionError
from .models import Document
from .utils import clean_text, get_file_hash, validate_file_type


class DocumentProcessor:
    """Handles document loading and text extraction from various file formats."""

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        doc_config = config.get('document_processing', {})
        self.supported_formats = doc_config.get('supported_formats', ['pdf', 'docx', 'eml', 'txt', 'md'])
        self.logger = logging.getLogger(__name__)

    def extract(self, file_path: Union[str, Path], source: str = None) -> Document:
        """
        Extract the text of a single file.

        Args:
            file_path: Path to the file to process
            source: Display name for citations (defaults to the file name)

        Returns:
            Document with cleaned text and its origin

        Raises:
            ExtractionError: If the file is missing, unsupported or unreadable
        """
        file_path = str(file_path)
        if not os.path.isfile(file_path):
            raise ExtractionError(f"File not found: {file_path}", path=file_path)

        if not validate_file_type(file_path, self.supported_formats):
            raise ExtractionError(f"Unsupported file format: {Path(file_path).suffix}", path=file_path)

        file_extension = Path(file_path).suffix.lower().lstrip('.')
        self.logger.info(f"Processing file: {file_path}")

        try:
            if file_extension == 'pdf':
                content = self._process_pdf(file_path)
            elif file_extension == 'docx':
                content = self._process_docx(file_path)
            elif file_extension == 'eml':
                content = self._process_email(file_path)
            else:
                content = self._process_text(file_path)
        except Exception as e:
            self.logger.error(f"Error processing file {file_path}: {e}")
            raise ExtractionError(f"Could not extract text from {file_path}: {e}", path=file_path) from e

        return Document(
            text=content,
            source=source or Path(file_path).name,
            path=file_path,
            checksum=get_file_hash(file_path)
        )

    def extract_bytes(self, data: Union[bytes, BinaryIO], filename: str) -> Document:
        """
        Extract text from an in-memory upload.

        The payload is spooled to a temporary file carrying the upload's
        suffix so format detection works the same as for files on disk.
        """
        if not filename:
            raise ExtractionError("A filename is required to detect the document format")
        if not validate_file_type(filename, self.supported_formats):
            raise ExtractionError(f"Unsupported file format: {Path(filename).suffix}", path=filename)

        payload = data if isinstance(data, bytes) else data.read()
        suffix = Path(filename).suffix
        with tempfile.TemporaryDirectory() as temp_dir:
            temp_path = Path(temp_dir) / f"upload{suffix}"
            temp_path.write_bytes(payload)
            document = self.extract(temp_path, source=filename)

        return document.model_copy(update={'path': filename})

    def _process_pdf(self, file_path: str) -> str:
        """Extract text from PDF file."""
        text_content = []

        try:
            # pdfplumber copes better with complex layouts
            with pdfplumber.open(file_path) as pdf:
                for page_num, page in enumerate(pdf.pages, 1):
                    text = page.extract_text()
                    if text:
                        text_content.append(f"[Page {page_num}]\n{text}")

        except Exception as e:
            self.logger.warning(f"pdfplumber failed for {file_path}, trying pypdf: {e}")
            text_content = []
            with open(file_path, 'rb') as file:
                pdf_reader = pypdf.PdfReader(file)
                for page_num, page in enumerate(pdf_reader.pages, 1):
                    text = page.extract_text()
                    if text:
                        text_content.append(f"[Page {page_num}]\n{text}")

        return clean_text('\n\n'.join(text_content))

    def _process_docx(self, file_path: str) -> str:
        """Extract text from Word document."""
        doc = DocxDocument(file_path)
        text_content = []

        for paragraph in doc.paragraphs:
            if paragraph.text.strip():
                text_content.append(paragraph.text)

        for table in doc.tables:
            for row in table.rows:
                row_text = [cell.text.strip() for cell in row.cells if cell.text.strip()]
                if row_text:
                    text_content.append(' | '.join(row_text))

        return clean_text('\n\n'.join(text_content))

    def _process_email(self, file_path: str) -> str:
        """Extract headers and plain-text body parts from an email file."""
        with open(file_path, 'r', encoding='utf-8', errors='ignore') as file:
            msg = email.message_from_file(file)

        text_content = []
        for header in ('Subject', 'From', 'To', 'Date'):
            value = msg.get(header, '')
            if value:
                text_content.append(f"{header}: {value}")

        text_content.append("")

        parts = msg.walk() if msg.is_multipart() else [msg]
        for part in parts:
            if part.get_content_type() != "text/plain":
                continue
            body = part.get_payload(decode=True)
            if body:
                text_content.append(body.decode('utf-8', errors='ignore'))

        return clean_text('\n\n'.join(text_content))

    def _process_text(self, file_path: str) -> str:
        """Extract text from plain text or markdown file."""
        try:
            with open(file_path, 'r', encoding='utf-8') as file:
                content = file.read()
        except UnicodeDecodeError:
            with open(file_path, 'r', encoding='latin-1') as file:
                content = file.read()

        return clean_text(content)

    def get_supported_formats(self) -> List[str]:
        """Return list of supported file formats."""
        return list(self.supported_formats)
