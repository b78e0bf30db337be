from __future__ import annotations

import logging
import os
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from medreq.core.config import settings
from medreq.core.errors import InvalidRequest

logger = logging.getLogger("medreq_api.proof_storage")

ALLOWED_PROOF_TYPES = {
    "application/pdf": ".pdf",
    "image/jpeg": ".jpg",
    "image/png": ".png",
}
ALLOWED_PROOF_EXTENSIONS = {".pdf", ".jpg", ".jpeg", ".png"}


class ProofStorageError(Exception):
    pass


@dataclass
class ProofUpload:
    filename: str
    content_type: str
    data: bytes


def _safe_filename(filename: str) -> str:
    base = os.path.basename(filename or "").strip() or "proof"
    return re.sub(r"[^A-Za-z0-9._-]+", "_", base)


def proof_key(actor_id: uuid.UUID, requisition_id: uuid.UUID, filename: str, *, now: datetime | None = None) -> str:
    """Storage key ``{actorId}/{requisitionId}/{timestamp}_{filename}`` (timestamp in ms)."""
    moment = now or datetime.now(timezone.utc)
    stamp = int(moment.timestamp() * 1000)
    return f"{actor_id}/{requisition_id}/{stamp}_{_safe_filename(filename)}"


def validate_proof(upload: ProofUpload) -> None:
    content_type = (upload.content_type or "").lower()
    ext = os.path.splitext(upload.filename or "")[1].lower()
    if content_type not in ALLOWED_PROOF_TYPES or ext not in ALLOWED_PROOF_EXTENSIONS:
        raise InvalidRequest("payment proof must be a PDF, JPEG or PNG file")
    if not upload.data:
        raise InvalidRequest("payment proof file is empty")
    if len(upload.data) > settings.max_proof_size:
        raise InvalidRequest(f"payment proof exceeds the {settings.max_proof_size // (1024 * 1024)} MB limit")


class LocalProofStorage:
    """Stores proof files under a root directory, one file per key."""

    def __init__(self, root: str | os.PathLike[str]) -> None:
        self.root = Path(root)

    def _path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ProofStorageError(f"invalid proof key: {key}")
        return path

    def save(self, key: str, data: bytes) -> str:
        path = self._path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise ProofStorageError(f"could not write proof file: {exc}") from exc
        return key

    def path(self, key: str) -> Path:
        path = self._path_for(key)
        if not path.is_file():
            raise ProofStorageError(f"proof file not found: {key}")
        return path

    def delete(self, key: str) -> None:
        try:
            self._path_for(key).unlink(missing_ok=True)
        except (OSError, ProofStorageError):
            logger.exception("Failed to remove proof file", extra={"key": key})


def get_proof_storage() -> LocalProofStorage:
    root = settings.proof_storage_dir or os.path.join(os.path.dirname(__file__), "..", "..", "uploads", "payment_proofs")
    return LocalProofStorage(os.path.abspath(root))
