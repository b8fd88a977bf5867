"""
Upload Session Store - Single-use wireless upload sessions.

A session is opened by the kiosk and handed to a phone as a secret
token. The phone may push exactly one document into it; the pending ->
uploaded transition happens at most once even under concurrent uploads.
Sessions expire after a period without activity.
"""

from __future__ import annotations

import asyncio
import hmac
import secrets
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from kiosk.core.exceptions import RepositoryError
from kiosk.core.value_objects import (
    SessionStatus,
    UploadedDocument,
    UploadErrorCode,
    UploadResult,
)
from kiosk.loggers import logger


# =============================================================================
# Constants
# =============================================================================

DEFAULT_MAX_FILE_SIZE = 25 * 1024 * 1024
DEFAULT_SESSION_TTL_S = 30 * 60
DEFAULT_ALLOWED_EXTENSIONS = frozenset({"pdf", "doc", "docx", "png", "jpg", "jpeg"})

# Content types accepted per extension; generic binary is always accepted
EXTENSION_CONTENT_TYPES: dict[str, frozenset[str]] = {
    "pdf": frozenset({"application/pdf"}),
    "doc": frozenset({"application/msword"}),
    "docx": frozenset(
        {"application/vnd.openxmlformats-officedocument.wordprocessingml.document"}
    ),
    "png": frozenset({"image/png"}),
    "jpg": frozenset({"image/jpeg", "image/jpg", "image/pjpeg"}),
    "jpeg": frozenset({"image/jpeg", "image/jpg", "image/pjpeg"}),
}
GENERIC_CONTENT_TYPES = frozenset({"", "application/octet-stream"})


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _extension(filename: str) -> str:
    suffix = Path(filename).suffix
    return suffix[1:].lower() if suffix else ""


# =============================================================================
# Session Data
# =============================================================================


@dataclass(frozen=True)
class IncomingFile:
    """A file received from the uploading device."""

    filename: str
    content_type: str
    data: bytes
    # Declared size when the body was cut short at the limit
    size: Optional[int] = None

    @property
    def size_bytes(self) -> int:
        return self.size if self.size is not None else len(self.data)


@dataclass
class UploadSession:
    """State of one upload session."""

    session_id: str
    token: str
    upload_url: str
    created_at: str
    last_activity: float
    status: SessionStatus = SessionStatus.PENDING
    documents: list[UploadedDocument] = field(default_factory=list)

    @property
    def document(self) -> Optional[UploadedDocument]:
        """Most recently uploaded document."""
        return self.documents[-1] if self.documents else None

    def to_dict(self, include_token: bool = False) -> dict[str, Any]:
        """
        Snapshot of the session.

        The token and upload URL are only included for callers that
        already hold the token or created the session.
        """
        document = self.document
        data: dict[str, Any] = {
            "sessionId": self.session_id,
            "status": self.status.value,
            "createdAt": self.created_at,
            "documents": [doc.to_dict() for doc in self.documents],
            "document": document.to_dict() if document else None,
        }
        if include_token:
            data["token"] = self.token
            data["uploadUrl"] = self.upload_url
        return data


# =============================================================================
# Session Store
# =============================================================================


class UploadSessionStore:
    """
    In-memory registry of upload sessions.

    Uploaded files are written under ``upload_dir/<session_id>/``.
    """

    def __init__(
        self,
        upload_dir: str | Path = "uploads",
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
        allowed_extensions: Iterable[str] = DEFAULT_ALLOWED_EXTENSIONS,
        ttl_seconds: float = DEFAULT_SESSION_TTL_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the store.

        Args:
            upload_dir: Root directory for uploaded files.
            max_file_size: Largest accepted upload in bytes.
            allowed_extensions: Accepted file extensions, without the dot.
            ttl_seconds: Inactivity period after which a session expires.
            clock: Monotonic clock, injectable for tests.
        """
        self.upload_dir = Path(upload_dir)
        self.max_file_size = max_file_size
        self.allowed_extensions = frozenset(ext.lower().lstrip(".") for ext in allowed_extensions)
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: dict[str, UploadSession] = {}
        self._by_token: dict[str, str] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    # =========================================================================
    # Session Lifecycle
    # =========================================================================

    def create_session(self, base_url: str) -> dict[str, Any]:
        """
        Open a new pending session.

        Args:
            base_url: Public base URL the phone can reach.

        Returns:
            Session snapshot including the token and upload URL.
        """
        self.purge_expired()

        session_id = uuid.uuid4().hex
        token = secrets.token_urlsafe(24)
        session = UploadSession(
            session_id=session_id,
            token=token,
            upload_url=f"{base_url.rstrip('/')}/upload/{token}",
            created_at=_utc_now(),
            last_activity=self._clock(),
        )
        self._sessions[session_id] = session
        self._by_token[token] = session_id
        logger.info(f"Upload session {session_id} created")
        return session.to_dict(include_token=True)

    def try_get_session(self, session_id: str) -> Optional[dict[str, Any]]:
        """Snapshot of a live session, without its token, or None."""
        session = self._get_live(session_id)
        return session.to_dict() if session else None

    def try_get_session_by_token(self, token: str) -> Optional[dict[str, Any]]:
        """Snapshot of the live session owning ``token``, or None."""
        session_id = self._by_token.get(token)
        if session_id is None:
            return None
        session = self._get_live(session_id)
        return session.to_dict(include_token=True) if session else None

    def get_documents(self, session_id: str) -> Optional[list[UploadedDocument]]:
        """Documents of a live session, or None if the session is unknown."""
        session = self._get_live(session_id)
        return list(session.documents) if session else None

    def purge_expired(self) -> int:
        """
        Evict every expired session.

        Returns:
            Number of sessions evicted.
        """
        now = self._clock()
        expired = [
            sid for sid, session in self._sessions.items() if self._is_expired(session, now)
        ]
        for session_id in expired:
            self._evict(session_id)
        if expired:
            logger.info(f"Evicted {len(expired)} expired upload session(s)")
        return len(expired)

    # =========================================================================
    # Upload
    # =========================================================================

    async def store_upload(
        self,
        session_id: str,
        token: str,
        file: IncomingFile,
    ) -> UploadResult:
        """
        Store the single document of a session.

        Checks run in order: session, token, status, file type, size.
        The status check is repeated under the per-session lock so only
        one of several concurrent uploads can win.
        """
        session = self._get_live(session_id)
        if session is None:
            return UploadResult.failed(UploadErrorCode.SESSION_NOT_FOUND, "Session not found.")

        if not self._token_matches(session.token, token):
            logger.warning(f"Upload to session {session_id} rejected: invalid token")
            return UploadResult.failed(UploadErrorCode.INVALID_TOKEN, "Invalid upload token.")

        if session.status is SessionStatus.UPLOADED:
            return self._already_uploaded(session_id)

        if not self._is_supported(file):
            return UploadResult.failed(
                UploadErrorCode.UNSUPPORTED_FILE_TYPE,
                "Unsupported file type. Allowed: "
                + ", ".join(sorted(self.allowed_extensions))
                + ".",
            )

        if file.size_bytes > self.max_file_size:
            return UploadResult.failed(
                UploadErrorCode.FILE_TOO_LARGE,
                f"File exceeds the {self.max_file_size // (1024 * 1024)} MB limit.",
            )

        lock = self._locks.setdefault(session_id, asyncio.Lock())
        async with lock:
            if session.status is not SessionStatus.PENDING:
                return self._already_uploaded(session_id)

            document_id = uuid.uuid4().hex
            extension = _extension(file.filename)
            target = self.upload_dir / session_id / f"{document_id}.{extension}"
            await asyncio.to_thread(self._write_file, target, file.data)

            document = UploadedDocument(
                document_id=document_id,
                session_id=session_id,
                filename=Path(file.filename).name,
                storage_path=str(target),
                content_type=file.content_type or "application/octet-stream",
                size_bytes=len(file.data),
                uploaded_at=_utc_now(),
            )
            session.documents.append(document)
            session.status = SessionStatus.UPLOADED
            session.last_activity = self._clock()

        logger.info(
            f"Upload session {session_id}: stored {document.filename} "
            f"({document.size_bytes} bytes)"
        )
        return UploadResult.stored(document)

    # =========================================================================
    # Internals
    # =========================================================================

    def _get_live(self, session_id: str) -> Optional[UploadSession]:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if self._is_expired(session, self._clock()):
            self._evict(session_id)
            logger.info(f"Upload session {session_id} expired")
            return None
        return session

    def _is_expired(self, session: UploadSession, now: float) -> bool:
        return now - session.last_activity >= self.ttl_seconds

    def _evict(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            self._by_token.pop(session.token, None)
        lock = self._locks.get(session_id)
        if lock is not None and not lock.locked():
            del self._locks[session_id]

    def _is_supported(self, file: IncomingFile) -> bool:
        extension = _extension(file.filename)
        if extension not in self.allowed_extensions:
            return False
        content_type = (file.content_type or "").split(";")[0].strip().lower()
        if content_type in GENERIC_CONTENT_TYPES:
            return True
        accepted = EXTENSION_CONTENT_TYPES.get(extension)
        return accepted is None or content_type in accepted

    @staticmethod
    def _token_matches(expected: str, supplied: Optional[str]) -> bool:
        if not supplied:
            return False
        return hmac.compare_digest(expected.encode(), supplied.encode())

    @staticmethod
    def _already_uploaded(session_id: str) -> UploadResult:
        logger.warning(f"Upload to session {session_id} rejected: already used")
        return UploadResult.failed(
            UploadErrorCode.ALREADY_UPLOADED, "This session already received a document."
        )

    @staticmethod
    def _write_file(target: Path, data: bytes) -> None:
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise RepositoryError(f"Could not store upload {target.name}: {e}") from e
