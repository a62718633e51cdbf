import logging
import os
import uuid

import filetype
from flask import current_app
from werkzeug.utils import secure_filename

from achievetrack.errors import ValidationFailed

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {
    'certificate': {'application/pdf', 'image/jpeg', 'image/png'},
    'photo': {'image/jpeg', 'image/png'},
}

URL_PREFIX = '/uploads/'


def sniff_mime_type(file_stream):
    # Read first 2048 bytes for signature checking
    header = file_stream.read(2048)
    file_stream.seek(0)  # Reset stream pointer

    kind = filetype.guess(header)
    return kind.mime if kind else None


def stream_size(file_stream):
    file_stream.seek(0, os.SEEK_END)
    size = file_stream.tell()
    file_stream.seek(0)
    return size


class UploadService:
    @staticmethod
    def save(file, kind):
        """
        Store an uploaded certificate or photo and return its public path,
        e.g. '/uploads/certificate/3f2a..._award.pdf'.

        The content type is taken from the file signature, not the client's
        declared type.
        """
        if kind not in ALLOWED_MIME_TYPES:
            raise ValidationFailed("Invalid type. Must be 'certificate' or 'photo'")
        if file is None or not file.filename:
            raise ValidationFailed("No file provided")

        allowed = ALLOWED_MIME_TYPES[kind]
        mime = sniff_mime_type(file.stream)
        if mime not in allowed:
            raise ValidationFailed(f"Invalid file type. Allowed types: {', '.join(sorted(allowed))}")

        max_size = current_app.config['MAX_UPLOAD_SIZE']
        if stream_size(file.stream) > max_size:
            raise ValidationFailed(f"File size exceeds {max_size // (1024 * 1024)}MB limit")

        original_filename = secure_filename(file.filename) or 'upload'
        unique_filename = f"{uuid.uuid4().hex}_{original_filename}"

        folder = os.path.join(current_app.config['UPLOAD_FOLDER'], kind)
        os.makedirs(folder, exist_ok=True)
        file.save(os.path.join(folder, unique_filename))

        logger.info(f"Stored {kind} upload {unique_filename} ({mime})")
        return f"{URL_PREFIX}{kind}/{unique_filename}"

    @staticmethod
    def public_path(relative_path):
        return f"{URL_PREFIX}{relative_path}"
