import uuid
from pathlib import Path, PurePath

from claimflow.core.config import settings


def upload_root() -> Path:
    root = Path(settings.UPLOAD_DIR)
    root.mkdir(parents=True, exist_ok=True)
    return root


def save_upload(claim_id: str, filename: str, content: bytes) -> str:
    """Write an attachment under ``<UPLOAD_DIR>/<claim_id>/`` and return its storage key."""
    suffix = PurePath(filename or "").suffix.lower()
    key = f"{claim_id}/{uuid.uuid4().hex}{suffix}"
    path = upload_root() / key
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return key


def delete_upload(storage_key: str) -> None:
    path = upload_root() / storage_key
    path.unlink(missing_ok=True)
