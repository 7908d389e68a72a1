"""Cloud Storage uploads for user-provided files."""

import os
import uuid

from werkzeug.utils import secure_filename

ALLOWED_ID_CARD_EXTENSIONS = {'png', 'jpg', 'jpeg', 'webp', 'pdf'}
ALLOWED_ID_CARD_MIME_TYPES = {'image/png', 'image/jpeg', 'image/webp', 'application/pdf'}
MAX_ID_CARD_BYTES = 5 * 1024 * 1024


def get_file_extension(filename):
    return os.path.splitext(str(filename or ''))[1].lstrip('.').lower()


def validate_id_card_upload(file_storage, data):
    """Return an error message for an unacceptable ID card upload, or ''."""
    ext = get_file_extension(file_storage.filename)
    mime_type = str(file_storage.mimetype or '').lower()
    if ext not in ALLOWED_ID_CARD_EXTENSIONS:
        return 'Medical ID card must be an image (PNG, JPG, WEBP) or PDF.'
    if mime_type and mime_type not in ALLOWED_ID_CARD_MIME_TYPES:
        return 'Medical ID card must be an image (PNG, JPG, WEBP) or PDF.'
    if not data:
        return 'Medical ID card file is empty.'
    if len(data) > MAX_ID_CARD_BYTES:
        return 'Medical ID card must be 5MB or smaller.'
    return ''


def build_id_card_path(uid, filename):
    safe_name = secure_filename(filename or '') or 'id-card'
    return f"medical-ids/{uid}/{uuid.uuid4().hex}_{safe_name}"


def upload_public_file(bucket, path, data, content_type):
    blob = bucket.blob(path)
    blob.upload_from_string(data, content_type=content_type)
    blob.make_public()
    return blob.public_url
