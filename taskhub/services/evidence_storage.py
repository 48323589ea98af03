"""
Evidence file policy and local-disk storage.

Policy (enforced before anything is written):
    - MIME type normalised (lower-case, parameters dropped) and checked
      against ALLOWED_MIME_TYPES
    - payload is base64, optionally wrapped as a ``data:...;base64,`` URL
    - decoded size between 1 byte and MAX_EVIDENCE_BYTES (10 MiB)

Layout on disk, relative to UPLOAD_FOLDER:
    <tenant_id>/justification_evidences/<justification_id>/<evidence_id>_<name>
    <tenant_id>/task_evidences/<task_id>/<evidence_id>_<name>
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
import re

from flask import current_app

from taskhub.core.exceptions import (
    FileNotFoundOnDiskError,
    FileTooLargeError,
    InvalidFileError,
    InvalidMimeError,
    InvalidPathError,
)

logger = logging.getLogger(__name__)

MAX_EVIDENCE_BYTES = 10 * 1024 * 1024
DEFAULT_MIME = "application/octet-stream"
FILE_NAME_MAX = 120

ALLOWED_MIME_TYPES = frozenset({
    "application/pdf",
    "application/octet-stream",
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "text/plain",
    "text/csv",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
})

_UNSAFE_CHARS = re.compile(r"[^\w.\-]")
_DATA_URL_PREFIX = re.compile(r"^data:[^,]*;base64,", re.IGNORECASE)


def normalise_mime(mime_type: str | None) -> str:
    mime = (mime_type or "").split(";", 1)[0].strip().lower()
    return mime or DEFAULT_MIME


def check_mime(mime_type: str | None) -> str:
    mime = normalise_mime(mime_type)
    if mime not in ALLOWED_MIME_TYPES:
        raise InvalidMimeError(f"Tipo de arquivo não permitido: {mime}", details={"mime_type": mime})
    return mime


def sanitize_file_name(name: str | None) -> str:
    base = os.path.basename((name or "").replace("\\", "/")).strip()
    cleaned = _UNSAFE_CHARS.sub("_", base)[:FILE_NAME_MAX].strip("._")
    return cleaned or "arquivo"


def decode_payload(content: str | None, max_bytes: int | None = None) -> bytes:
    """Decode a base64 payload and enforce the size window."""
    if max_bytes is None:
        max_bytes = current_app.config.get("MAX_EVIDENCE_BYTES", MAX_EVIDENCE_BYTES)
    if not isinstance(content, str) or not content.strip():
        raise InvalidFileError("Arquivo vazio ou ausente")

    text = _DATA_URL_PREFIX.sub("", content.strip())
    if text.lower().startswith("base64,"):
        text = text[len("base64,"):]
    text = "".join(text.split())

    # Reject before decoding when the encoded length already exceeds the cap
    if len(text) * 3 // 4 > max_bytes + 2:
        raise FileTooLargeError(
            f"Arquivo excede {max_bytes // (1024 * 1024)} MB",
            details={"max_bytes": max_bytes},
        )
    try:
        data = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidFileError("Conteúdo base64 inválido") from exc

    if not data:
        raise InvalidFileError("Arquivo vazio")
    if len(data) > max_bytes:
        raise FileTooLargeError(
            f"Arquivo excede {max_bytes // (1024 * 1024)} MB",
            details={"max_bytes": max_bytes},
        )
    return data


class LocalEvidenceStorage:
    """Stores evidence files under a root directory."""

    def __init__(self, root: str):
        self.root = os.path.realpath(root)

    def relative_path(self, tenant_id: int, folder: str, owner_id: str, evidence_id: str, file_name: str) -> str:
        return "/".join((
            str(tenant_id),
            folder,
            owner_id,
            f"{evidence_id}_{sanitize_file_name(file_name)}",
        ))

    def resolve(self, relative_path: str) -> str:
        """Absolute path for *relative_path*; must stay inside the root."""
        full = os.path.realpath(os.path.join(self.root, relative_path))
        if os.path.commonpath([full, self.root]) != self.root:
            logger.warning("Evidence path escapes upload root: %s", relative_path)
            raise InvalidPathError("Caminho de arquivo inválido")
        return full

    def save(self, relative_path: str, data: bytes) -> str:
        full = self.resolve(relative_path)
        os.makedirs(os.path.dirname(full), exist_ok=True)
        with open(full, "wb") as fh:
            fh.write(data)
        return full

    def open_path(self, relative_path: str) -> str:
        full = self.resolve(relative_path)
        if not os.path.isfile(full):
            raise FileNotFoundOnDiskError("Arquivo não encontrado")
        return full

    def delete(self, relative_path: str) -> None:
        try:
            os.remove(self.resolve(relative_path))
        except FileNotFoundError:
            logger.info("Evidence file already absent: %s", relative_path)


def get_storage() -> LocalEvidenceStorage:
    return LocalEvidenceStorage(current_app.config["UPLOAD_FOLDER"])
