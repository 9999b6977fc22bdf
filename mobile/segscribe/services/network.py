"""HTTP client for the remote speech-to-text endpoint."""

from __future__ import annotations

import logging
from typing import Callable, Optional

import httpx

from ..config import PipelineSettings
from ..errors import ErrorKind, OfflineError, TranscriptionError
from ..metrics import REMOTE_ATTEMPTS
from ..store.offline_queue import OfflineQueueStore
from ..store.settings_store import SettingsStore

LOGGER = logging.getLogger("segscribe.remote")

_STATUS_KINDS = {
    400: (ErrorKind.MALFORMED_INPUT, "Bad request - invalid audio file"),
    401: (ErrorKind.AUTH_FAILURE, "Authentication failed"),
    413: (ErrorKind.PAYLOAD_TOO_LARGE, "File too large"),
    429: (ErrorKind.RATE_LIMITED, "Rate limit exceeded"),
}


def classify_status(status_code: int) -> Optional[TranscriptionError]:
    """Map an HTTP status to a transcription error; None means success."""
    if 200 <= status_code < 300:
        return None
    if status_code in _STATUS_KINDS:
        kind, message = _STATUS_KINDS[status_code]
        return TranscriptionError(kind, message)
    if 500 <= status_code < 600:
        return TranscriptionError(ErrorKind.SERVER_ERROR, f"Server error ({status_code})")
    return TranscriptionError(ErrorKind.UNKNOWN_HTTP, f"HTTP {status_code}", retryable=True)


class RemoteTranscriptionClient:
    """Performs exactly one upload+response cycle per call and classifies the outcome."""

    def __init__(
        self,
        settings: PipelineSettings,
        *,
        credentials: Optional[SettingsStore] = None,
        offline_queue: Optional[OfflineQueueStore] = None,
        is_online: Optional[Callable[[], bool]] = None,
        on_offline: Optional[Callable[[], None]] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.settings = settings
        self.credentials = credentials
        self.offline_queue = offline_queue
        self.is_online = is_online
        self.on_offline = on_offline
        self.timeout = settings.request_timeout
        self._client = client or httpx.Client(timeout=self.timeout)

    def _api_key(self) -> str:
        key = ""
        if self.credentials is not None:
            key = self.credentials.get().api_key
        key = key or self.settings.api_key or ""
        if not key:
            raise TranscriptionError(ErrorKind.AUTH_FAILURE, "API key missing")
        return key

    def _url(self) -> str:
        url = ""
        if self.credentials is not None:
            url = self.credentials.get().server_url.strip()
        return url or self.settings.transcription_url

    def _language(self, language: Optional[str]) -> Optional[str]:
        if language:
            return language
        if self.credentials is not None and self.credentials.get().language:
            return self.credentials.get().language
        return self.settings.language

    def transcribe(
        self,
        audio: bytes,
        filename: str,
        *,
        segment_id: Optional[str] = None,
        language: Optional[str] = None,
    ) -> str:
        if len(audio) > self.settings.max_upload_bytes:
            raise self._count(
                TranscriptionError(
                    ErrorKind.PAYLOAD_TOO_LARGE,
                    f"File too large ({len(audio)} bytes > {self.settings.max_upload_bytes})",
                )
            )
        if self.is_online is not None and not self.is_online():
            raise self._count(self._defer(segment_id, OfflineError()))

        headers = {"Authorization": f"Bearer {self._api_key()}"}
        data = {"model": self.settings.transcription_model}
        lang = self._language(language)
        if lang:
            data["language"] = lang
        files = {"file": (filename, audio, "audio/wave")}
        try:
            resp = self._client.post(
                self._url(), headers=headers, files=files, data=data, timeout=self.timeout
            )
        except httpx.ConnectError as exc:
            raise self._count(self._defer(segment_id, OfflineError(f"Network connection failed: {exc}")))
        except httpx.TimeoutException as exc:
            raise self._count(TranscriptionError(ErrorKind.UNKNOWN_HTTP, f"Request timed out: {exc}", retryable=True))
        except httpx.HTTPError as exc:
            raise self._count(TranscriptionError(ErrorKind.UNKNOWN_HTTP, f"Request failed: {exc}", retryable=True))
        return self._handle_response(resp)

    def _handle_response(self, resp: httpx.Response) -> str:
        error = classify_status(resp.status_code)
        if error is not None:
            detail = resp.text.strip()[:200]
            if detail:
                error.message = f"{error.message}: {detail}"
                error.args = (error.message,)
            raise self._count(error)
        try:
            payload = resp.json()
        except ValueError as exc:
            raise self._count(
                TranscriptionError(ErrorKind.MALFORMED_RESPONSE, f"Invalid response: {exc}", retryable=False)
            )
        text = payload.get("text") if isinstance(payload, dict) else None
        if not isinstance(text, str):
            raise self._count(
                TranscriptionError(ErrorKind.MALFORMED_RESPONSE, "Invalid response: missing text", retryable=False)
            )
        REMOTE_ATTEMPTS.labels(kind="success").inc()
        return text.strip()

    def _defer(self, segment_id: Optional[str], error: OfflineError) -> OfflineError:
        if segment_id and self.offline_queue is not None:
            if self.offline_queue.add(segment_id):
                LOGGER.info("Segment %s deferred until connectivity returns", segment_id[:6])
        if self.on_offline is not None:
            self.on_offline()
        return error

    def _count(self, error: TranscriptionError) -> TranscriptionError:
        REMOTE_ATTEMPTS.labels(kind=error.kind.value).inc()
        return error

    def test_connection(self, url: Optional[str] = None) -> bool:
        try:
            resp = self._client.head(url or self._url(), timeout=min(self.timeout, 5.0))
        except httpx.HTTPError:
            return False
        return resp.status_code < 600

    def close(self) -> None:
        self._client.close()


__all__ = ["RemoteTranscriptionClient", "classify_status"]
