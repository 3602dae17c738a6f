# -*- coding: utf-8 -*-
"""Document upload, listing, download and deletion."""

from flask import Blueprint, request, send_file

from carfinance.access import current_principal, ensure_can_access, principal_required
from carfinance.extensions import db
from carfinance.models import Document
from carfinance.quota import log_access_decision
from carfinance.services import document_service
from carfinance.utils.http_helpers import api_error, api_ok

bp = Blueprint('documents', __name__, url_prefix='/api/documents')


def _load_document(doc_id: int, route_name: str):
    doc = db.session.get(Document, doc_id)
    if doc is None:
        return None
    ensure_can_access(current_principal(), doc.user_id, route_name)
    return doc


@bp.route('/upload', methods=['POST'])
@principal_required
def upload():
    doc = document_service.save_document(current_principal().id, request.files.get('document'))
    return api_ok({"document": doc.to_dict()}, status=201)


@bp.route('', methods=['GET'])
@principal_required
def list_documents():
    docs = (
        Document.query.filter_by(user_id=current_principal().id)
        .order_by(Document.uploaded_at.desc(), Document.id.desc())
        .all()
    )
    return api_ok({"documents": [d.to_dict() for d in docs]})


@bp.route('/<int:doc_id>', methods=['GET'])
@principal_required
def get_document(doc_id):
    doc = _load_document(doc_id, "documents.get")
    if doc is None:
        return api_error("not_found", "Document not found", status=404)
    return api_ok({"document": doc.to_dict()})


@bp.route('/<int:doc_id>/download', methods=['GET'])
@principal_required
def download(doc_id):
    doc = _load_document(doc_id, "documents.download")
    if doc is None:
        return api_error("not_found", "Document not found", status=404)
    if not document_service.file_exists(doc):
        return api_error("file_missing", "File not found on server", status=404)
    log_access_decision("documents.download", current_principal().id, "allowed", f"doc_id={doc.id}")
    return send_file(
        doc.file_path,
        mimetype=doc.mime_type,
        as_attachment=True,
        download_name=doc.original_name,
    )


@bp.route('/<int:doc_id>', methods=['DELETE'])
@principal_required
def delete(doc_id):
    principal = current_principal()
    doc = db.session.get(Document, doc_id)
    if doc is None:
        return api_error("not_found", "Document not found", status=404)
    # Sales staff may read documents but only the owner removes them.
    if doc.user_id != principal.id:
        log_access_decision("documents.delete", principal.id, "rejected", f"owner={doc.user_id}")
        return api_error("forbidden", "Only the owner can delete this document.", status=403)
    document_service.delete_document(doc)
    return api_ok({"deleted": doc_id})
