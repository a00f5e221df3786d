"""Per-student upload storage.

Files are addressed by a path relative to the upload root, always written
with forward slashes (e.g. ``uploads/final_thesis/s123456/final_thesis_s123456.pdf``),
which is the form stored in the thesis path columns.

Placement is staged: an UploadBatch moves incoming files next to their
final slot with a ``.pending`` suffix, and only renames them into place
when the caller commits the batch after its database transaction has
committed. Discarding the batch removes the pending files, so a rolled
back transaction leaves no orphaned file behind.
"""

import errno
import logging
import os
import posixpath
import shutil
import uuid
from dataclasses import dataclass
from typing import BinaryIO, List, Optional, Tuple

logger = logging.getLogger(__name__)

UPLOADS_DIR = "uploads"
TMP_DIR = posixpath.join(UPLOADS_DIR, "tmp")
CONCLUSION_REQUEST_DIR = posixpath.join(UPLOADS_DIR, "thesis_conclusion_request")
FINAL_THESIS_DIR = posixpath.join(UPLOADS_DIR, "final_thesis")
DRAFT_DIR = posixpath.join(UPLOADS_DIR, "thesis_conclusion_draft")

PENDING_SUFFIX = ".pending"
_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class UploadedFile:
    """A file received by the server and parked in the temporary directory.

    Attributes:
        path: Absolute path of the temporary copy
        filename: Name supplied by the client
        content_type: MIME type supplied by the client, if any
    """
    path: str
    filename: str
    content_type: Optional[str] = None


@dataclass(frozen=True)
class SubmittedFiles:
    """The three upload slots of a thesis submission, each optional."""
    thesis_file: Optional[UploadedFile] = None
    thesis_resume: Optional[UploadedFile] = None
    additional_zip: Optional[UploadedFile] = None

    def all(self) -> List[UploadedFile]:
        return [f for f in (self.thesis_file, self.thesis_resume, self.additional_zip) if f is not None]


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def move_file(src: str, dest: str) -> None:
    """Rename ``src`` to ``dest``, copying across filesystems when needed."""
    try:
        os.replace(src, dest)
    except OSError as exc:
        if exc.errno != errno.EXDEV:
            raise
        shutil.copy2(src, dest)
        os.unlink(src)


def safe_unlink(path: Optional[str]) -> None:
    """Delete ``path`` if it exists."""
    if not path:
        return
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass


def cleanup_uploads(*files: Optional[UploadedFile]) -> None:
    """Best-effort removal of temporary uploads; failures are only logged."""
    for upload in files:
        if upload is None:
            continue
        try:
            safe_unlink(upload.path)
        except OSError as exc:
            logger.warning("Could not remove temporary upload %s: %s", upload.path, exc)


class UploadStore:
    """Filesystem rooted at the directory that contains ``uploads/``."""

    def __init__(self, root: str):
        self.root = os.path.abspath(root)

    def absolute(self, relative_path: str) -> str:
        return os.path.join(self.root, *relative_path.split("/"))

    def exists(self, relative_path: Optional[str]) -> bool:
        return bool(relative_path) and os.path.isfile(self.absolute(relative_path))

    def save_temp(self, stream: BinaryIO, filename: str, content_type: Optional[str] = None) -> UploadedFile:
        """Copy an incoming stream into ``uploads/tmp`` under a unique name."""
        tmp_dir = self.absolute(TMP_DIR)
        ensure_dir(tmp_dir)
        path = os.path.join(tmp_dir, f"{uuid.uuid4().hex}_{os.path.basename(filename or 'upload')}")
        with open(path, "wb") as out:
            shutil.copyfileobj(stream, out, _CHUNK_SIZE)
        return UploadedFile(path=path, filename=filename, content_type=content_type)

    def batch(self) -> "UploadBatch":
        return UploadBatch(self)

    def resolve_valid_draft_file_path(self, stored_path: Optional[str], student_id: str) -> Optional[str]:
        """Return ``stored_path`` normalized, if it is an existing file in the
        student's draft directory; otherwise None."""
        if not stored_path:
            return None
        normalized = posixpath.normpath(stored_path.replace("\\", "/"))
        prefix = posixpath.join(DRAFT_DIR, str(student_id)) + "/"
        if not normalized.startswith(prefix):
            return None
        if not os.path.isfile(self.absolute(normalized)):
            return None
        return normalized


class UploadBatch:
    """Files staged for one operation, placed only on commit."""

    def __init__(self, store: UploadStore):
        self.store = store
        self._staged: List[Tuple[str, str]] = []
        self._deletions: List[str] = []

    @property
    def staged_paths(self) -> List[str]:
        return [final for _, final in self._staged]

    def stage(self, upload: UploadedFile, relative_path: str) -> str:
        """Move a temporary upload next to its final slot.

        Returns:
            ``relative_path``, to be stored in the thesis path column
        """
        final = self.store.absolute(relative_path)
        ensure_dir(os.path.dirname(final))
        pending = final + PENDING_SUFFIX
        move_file(upload.path, pending)
        self._staged.append((pending, final))
        return relative_path

    def delete_on_commit(self, relative_path: Optional[str]) -> None:
        """Remove a previously stored file once the batch commits."""
        if relative_path:
            self._deletions.append(self.store.absolute(relative_path))

    def commit(self) -> None:
        """Rename staged files into place and drop superseded ones.

        Runs after the database commit, so a failing file is logged and the
        remaining files are still placed.
        """
        finals = set()
        for pending, final in self._staged:
            finals.add(final)
            try:
                os.replace(pending, final)
            except OSError as exc:
                logger.error("Could not place staged upload %s: %s", final, exc)
        for path in self._deletions:
            if path in finals:
                continue
            try:
                safe_unlink(path)
            except OSError as exc:
                logger.warning("Could not remove superseded upload %s: %s", path, exc)
        self._staged.clear()
        self._deletions.clear()

    def discard(self) -> None:
        for pending, _ in self._staged:
            try:
                safe_unlink(pending)
            except OSError as exc:
                logger.warning("Could not remove staged upload %s: %s", pending, exc)
        self._staged.clear()
        self._deletions.clear()


__all__ = [
    "UPLOADS_DIR",
    "TMP_DIR",
    "CONCLUSION_REQUEST_DIR",
    "FINAL_THESIS_DIR",
    "DRAFT_DIR",
    "UploadedFile",
    "SubmittedFiles",
    "UploadStore",
    "UploadBatch",
    "ensure_dir",
    "move_file",
    "safe_unlink",
    "cleanup_uploads",
]
