"""Text extraction from uploaded study files."""

import io
import os
import re

from pypdf import PdfReader

from . import prompt_registry

MAX_PDF_PAGES = 50
MIN_EXTRACTED_TEXT_LEN = 10

TEXT_MIME_TYPES = {'text/plain'}
PDF_MIME_TYPES = {'application/pdf', 'application/x-pdf'}
IMAGE_MIME_TYPES = {'image/png', 'image/jpeg', 'image/jpg', 'image/webp', 'image/gif'}
OFFICE_MIME_TYPES = {
    'application/msword',
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    'application/vnd.ms-excel',
    'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
}
EXTENSION_MIME_TYPES = {
    'txt': 'text/plain',
    'pdf': 'application/pdf',
    'png': 'image/png',
    'jpg': 'image/jpeg',
    'jpeg': 'image/jpeg',
    'webp': 'image/webp',
    'gif': 'image/gif',
    'doc': 'application/msword',
    'docx': 'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    'xls': 'application/vnd.ms-excel',
    'xlsx': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
}

ERROR_NO_FILE = 'No file provided'
ERROR_OFFICE = (
    'Word and Excel files are not yet supported. '
    'Please convert your document to PDF or TXT format and try again.'
)
ERROR_UNSUPPORTED = 'Unsupported file type. Please upload PDF, TXT or image files.'
ERROR_PDF_PARSE = 'Failed to parse PDF. The file might be corrupted or password-protected.'
ERROR_EMPTY = 'No meaningful text could be extracted from the file.'
ERROR_OCR_UNAVAILABLE = 'Image text extraction is not available right now.'

UTF16_BOMS = (b'\xff\xfe', b'\xfe\xff')
_WHITESPACE_RE = re.compile(r'\s+')


class ExtractionError(ValueError):
    def __init__(self, message, status_code=400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def resolve_mime_type(filename, declared_mime_type=''):
    """Declared MIME type when recognised, otherwise one inferred from the extension."""
    mime_type = str(declared_mime_type or '').split(';', 1)[0].strip().lower()
    known = TEXT_MIME_TYPES | PDF_MIME_TYPES | IMAGE_MIME_TYPES | OFFICE_MIME_TYPES
    if mime_type in known:
        return mime_type
    ext = os.path.splitext(str(filename or ''))[1].lstrip('.').lower()
    return EXTENSION_MIME_TYPES.get(ext, mime_type or 'application/octet-stream')


def collapse_whitespace(text):
    return _WHITESPACE_RE.sub(' ', str(text or '')).strip()


def decode_plain_text(data):
    if isinstance(data, str):
        return data
    if data.startswith(UTF16_BOMS):
        return data.decode('utf-16')
    # latin-1 decodes any byte sequence.
    for encoding in ('utf-8-sig', 'cp1252'):
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    return data.decode('latin-1')



def extract_pdf_text(data, max_pages=MAX_PDF_PAGES):
    try:
        reader = PdfReader(io.BytesIO(data))
        if reader.is_encrypted:
            raise ExtractionError(ERROR_PDF_PARSE)
        page_texts = []
        for page in reader.pages[:max_pages]:
            page_text = (page.extract_text() or '').strip()
            if page_text:
                page_texts.append(page_text)
    except ExtractionError:
        raise
    except Exception as exc:
        raise ExtractionError(ERROR_PDF_PARSE) from exc
    return collapse_whitespace('\n\n'.join(page_texts))


def extract_image_text(data, mime_type, *, client, types_module, model, logger=None):
    if client is None:
        raise ExtractionError(ERROR_OCR_UNAVAILABLE, 500)
    try:
        response = client.models.generate_content(
            model=model,
            contents=[
                types_module.Part.from_bytes(data=data, mime_type=mime_type),
                prompt_registry.get_prompt_template('image_ocr'),
            ],
        )
    except Exception as exc:
        if logger is not None:
            logger.error(f"Image OCR failed: {exc}")
        raise ExtractionError(ERROR_OCR_UNAVAILABLE, 500) from exc
    return collapse_whitespace(getattr(response, 'text', '') or '')


def extract_text(data, filename, declared_mime_type='', *, client=None, types_module=None, model='', logger=None):
    """Return text extracted from an uploaded file; raises ExtractionError."""
    mime_type = resolve_mime_type(filename, declared_mime_type)
    if mime_type in OFFICE_MIME_TYPES:
        raise ExtractionError(ERROR_OFFICE)

    if mime_type in TEXT_MIME_TYPES:
        # Plain text is returned verbatim so the editor shows it unchanged.
        text = decode_plain_text(data)
    elif mime_type in PDF_MIME_TYPES:
        text = extract_pdf_text(data)
    elif mime_type in IMAGE_MIME_TYPES:
        text = extract_image_text(
            data,
            'image/jpeg' if mime_type == 'image/jpg' else mime_type,
            client=client,
            types_module=types_module,
            model=model,
            logger=logger,
        )
    else:
        raise ExtractionError(ERROR_UNSUPPORTED)

    if len(text.strip()) < MIN_EXTRACTED_TEXT_LEN:
        raise ExtractionError(ERROR_EMPTY)
    return text
