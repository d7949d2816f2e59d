from __future__ import annotations

import hashlib
import uuid
from pathlib import Path

from werkzeug.utils import secure_filename

from cotiz.domain.contracts import StoredBlob, UploadedFile
from cotiz.domain.gateway import BlobStorage


class LocalBlobStorage(BlobStorage):
    """Filesystem blobs under ``root``.

    Writes are atomic (tmp -> replace) and every stored file gets a
    ``file://`` storage URI plus a public URL under ``public_base_url``.
    """

    def __init__(self, root: str | Path, public_base_url: str = "/files") -> None:
        self.root = Path(root).resolve()
        self.public_base_url = str(public_base_url or "").rstrip("/")

    def _safe_folder(self, folder: str) -> Path:
        parts = [secure_filename(part) for part in str(folder or "").split("/") if part.strip()]
        target = self.root.joinpath(*[part for part in parts if part]).resolve()
        if not target.is_relative_to(self.root):
            raise ValueError("Invalid storage folder")
        return target

    def save(self, upload: UploadedFile, *, folder: str, name_hint: str | None = None) -> StoredBlob:
        target_dir = self._safe_folder(folder)
        target_dir.mkdir(parents=True, exist_ok=True)

        safe_name = secure_filename(upload.filename or "") or "attachment.bin"
        prefix = secure_filename(name_hint or "") or uuid.uuid4().hex[:12]
        target_path = (target_dir / f"{prefix}-{safe_name}").resolve()
        if not target_path.is_relative_to(self.root):
            raise ValueError("Invalid attachment path")

        tmp_path = target_path.with_suffix(target_path.suffix + ".tmp")
        tmp_path.write_bytes(upload.data)
        tmp_path.replace(target_path)

        relative = target_path.relative_to(self.root).as_posix()
        return StoredBlob(
            file_name=safe_name,
            storage_uri=f"file://{target_path.as_posix()}",
            public_url=f"{self.public_base_url}/{relative}",
            content_type=upload.content_type or "application/octet-stream",
            size_bytes=upload.size,
            checksum=f"sha256:{hashlib.sha256(upload.data).hexdigest()}",
        )

    def resolve_path(self, storage_uri: str) -> Path:
        if not storage_uri.startswith("file://"):
            raise ValueError("Unsupported storage_uri")
        resolved = Path(storage_uri[len("file://") :]).resolve()
        if not resolved.is_relative_to(self.root):
            raise ValueError("Invalid storage_uri path")
        return resolved

    def resolve_public_path(self, relative_path: str) -> Path:
        resolved = (self.root / relative_path).resolve()
        if not resolved.is_relative_to(self.root):
            raise ValueError("Invalid public path")
        return resolved

    def delete(self, storage_uri: str) -> bool:
        path = self.resolve_path(storage_uri)
        if not path.exists():
            return False
        path.unlink()
        return True
