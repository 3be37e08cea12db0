from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from inbox_pipeline.domain.entities.message import Message


class AppError(Exception):
    """Base application error."""

    user_message = "The operation could not be completed."

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class NotFoundError(AppError):
    user_message = "The requested item is no longer available."


class PreconditionError(AppError):
    """Logic error detected before any network call. Never retried."""

    user_message = "This action is not available for this message or contact."


class RecordingStateError(AppError):
    """Recorder API used out of order (e.g. stop while inactive)."""


class PermissionReason(StrEnum):
    PERMISSION_DENIED = "permission_denied"
    NO_DEVICE = "no_device"
    OTHER = "other"


class MediaPermissionError(AppError):
    def __init__(self, reason: PermissionReason, detail: str = "") -> None:
        self.reason = reason
        super().__init__(detail or reason.value)

    @property
    def user_message(self) -> str:  # type: ignore[override]
        if self.reason is PermissionReason.PERMISSION_DENIED:
            return "Microphone access was blocked. Allow it in your browser settings and try again."
        if self.reason is PermissionReason.NO_DEVICE:
            return "No microphone was found. Connect one and try again."
        return "The microphone could not be started."


class TransferErrorKind(StrEnum):
    TIMEOUT = "timeout"
    NETWORK_FAILURE = "network_failure"
    SERVER_REJECTED = "server_rejected"
    CANCELLED = "cancelled"


class TransferError(AppError):
    def __init__(self, kind: TransferErrorKind, detail: str = "", *, status: int | None = None) -> None:
        self.kind = kind
        self.status = status
        super().__init__(detail or kind.value)

    @property
    def user_message(self) -> str:  # type: ignore[override]
        if self.kind is TransferErrorKind.TIMEOUT:
            return "The upload took too long. The file may be too large."
        if self.kind is TransferErrorKind.NETWORK_FAILURE:
            return "Could not reach the server. Check your connection."
        if self.kind is TransferErrorKind.SERVER_REJECTED:
            return "The server rejected this request. Try another file or try again later."
        return "The transfer was cancelled."


class SendStep(StrEnum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    UPLOAD = "upload"
    COMPOSE = "compose"


class SendError(AppError):
    """Failure of one step of a (possibly multi-part) send."""

    def __init__(
        self,
        step: SendStep,
        cause: AppError,
        *,
        partial: bool = False,
        delivered: list[Message] | None = None,
    ) -> None:
        self.step = step
        self.cause = cause
        self.partial = partial
        self.delivered = delivered or []
        super().__init__(f"{step.value} step failed: {cause.detail}")

    @property
    def user_message(self) -> str:  # type: ignore[override]
        if self.partial:
            return f"Only part of the message was sent ({self.step.value} failed). {self.cause.user_message}"
        return self.cause.user_message
