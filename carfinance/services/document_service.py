# -*- coding: utf-8 -*-
"""Document storage on local disk."""

import os
import uuid
from typing import Optional

from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.exceptions import RequestEntityTooLarge
from werkzeug.utils import secure_filename

from carfinance.exceptions import ValidationError
from carfinance.extensions import db
from carfinance.models import Document

ALLOWED_MIME_TYPES = {
    "application/pdf",
    "image/jpeg",
    "image/png",
    "image/gif",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
}
MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10 MB


class UnsupportedFileType(ValidationError):
    default_code = "unsupported_file_type"


def upload_folder() -> str:
    folder = current_app.config.get("UPLOAD_FOLDER") or os.path.join(current_app.instance_path, "uploads")
    os.makedirs(folder, exist_ok=True)
    return folder


def _file_size(upload: FileStorage) -> int:
    stream = upload.stream
    pos = stream.tell()
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(pos)
    return size


def save_document(user_id: int, upload: Optional[FileStorage]) -> Document:
    if upload is None or not upload.filename:
        raise ValidationError("No file uploaded", field="document", code="no_file")

    mime_type = (upload.mimetype or "").lower()
    if mime_type not in ALLOWED_MIME_TYPES:
        raise UnsupportedFileType(
            "Invalid file type. Only PDF, images, Word documents, and text files are allowed.",
            field="document",
        )

    size = _file_size(upload)
    # MAX_CONTENT_LENGTH normally rejects oversized bodies first.
    if size > int(current_app.config.get("MAX_UPLOAD_BYTES", MAX_UPLOAD_BYTES)):
        raise RequestEntityTooLarge()

    original_name = (upload.filename or "")[:255]
    ext = os.path.splitext(secure_filename(original_name))[1].lower()[:16]
    stored_name = f"document-{uuid.uuid4().hex}{ext}"
    path = os.path.join(upload_folder(), stored_name)
    upload.save(path)

    doc = Document(
        user_id=user_id,
        filename=stored_name,
        original_name=original_name,
        file_path=path,
        file_size=size,
        mime_type=mime_type,
    )
    db.session.add(doc)
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        _remove_file(path)
        raise
    current_app.logger.info("[DOCS] uploaded doc_id=%s user_id=%s size=%s type=%s", doc.id, user_id, size, mime_type)
    return doc


def _remove_file(path: str) -> bool:
    try:
        os.remove(path)
        return True
    except FileNotFoundError:
        return False


def delete_document(doc: Document) -> None:
    path = doc.file_path
    doc_id = doc.id
    db.session.delete(doc)
    db.session.commit()
    if path and not _remove_file(path):
        current_app.logger.warning("[DOCS] file already missing doc_id=%s", doc_id)
    current_app.logger.info("[DOCS] deleted doc_id=%s", doc_id)


def file_exists(doc: Document) -> bool:
    return bool(doc.file_path) and os.path.isfile(doc.file_path)
