"""
Judge0 sandbox client for running coding answers.

Resolves the question's language label, validates the source locally, and
submits to the sandbox either with a single blocking call (``wait=true``) or by
submitting and polling the returned token.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable

import httpx

from ...platform.config import settings
from .languages import (
    detect_input_requirement,
    preprocess_java_source,
    resolve_language,
    supported_languages,
)
from .schemas import PENDING_STATUS_IDS, ExecutionResult, result_from_submission

logger = logging.getLogger(__name__)

SUBMISSION_FIELDS = "stdout,stderr,compile_output,status_id,status,time,memory,message"
MAX_ERROR_TEXT = 500


class ExecutionError(RuntimeError):
    """Base class for code-execution failures."""


class ExecutionValidationError(ExecutionError, ValueError):
    """Raised locally, before any request, when a run cannot be dispatched."""


class EmptySourceError(ExecutionValidationError):
    """Raised when there is no code to run."""

    def __init__(self):
        super().__init__("Please enter some code to run.")


class UnsupportedLanguageError(ExecutionValidationError):
    """Raised when a language label has no sandbox mapping."""

    def __init__(self, label: str | None, supported: Iterable[str]):
        self.label = label
        self.supported = list(supported)
        super().__init__(
            f'Language "{label}" is not supported. Supported languages: {", ".join(self.supported)}'
        )


class SandboxUnavailableError(ExecutionError):
    """Raised when the sandbox cannot be reached or rejects the request."""


class SandboxTimeoutError(ExecutionError):
    """Raised when polling exceeds the configured maximum wait."""


class Judge0Client:
    """Async client for the Judge0 code-execution API."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        *,
        use_rapidapi: bool | None = None,
        rapidapi_host: str | None = None,
        timeout_seconds: float | None = None,
        wait_for_result: bool | None = None,
        poll_interval_seconds: float | None = None,
        max_wait_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.base_url = (base_url or settings.judge0_base_url).rstrip("/")
        self.api_key = settings.JUDGE0_API_KEY if api_key is None else api_key
        self.use_rapidapi = (
            (use_rapidapi if use_rapidapi is not None else settings.JUDGE0_USE_RAPIDAPI)
            or "rapidapi.com" in self.base_url
        )
        self.rapidapi_host = rapidapi_host or settings.JUDGE0_RAPIDAPI_HOST
        self.timeout_seconds = timeout_seconds or settings.JUDGE0_HTTP_TIMEOUT_SECONDS
        self.wait_for_result = settings.JUDGE0_WAIT_FOR_RESULT if wait_for_result is None else wait_for_result
        self.poll_interval_seconds = (
            settings.JUDGE0_POLL_INTERVAL_SECONDS if poll_interval_seconds is None else poll_interval_seconds
        )
        self.max_wait_seconds = settings.JUDGE0_MAX_WAIT_SECONDS if max_wait_seconds is None else max_wait_seconds
        self._transport = transport
        self._sleep = sleep

    @property
    def headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.use_rapidapi:
            if self.api_key:
                headers["X-RapidAPI-Key"] = self.api_key
                headers["X-RapidAPI-Host"] = self.rapidapi_host
        elif self.api_key and self.api_key.strip():
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_seconds,
            headers=self.headers,
            transport=self._transport,
        )

    async def _request(self, method: str, path: str, *, params: dict | None = None, json: dict | None = None) -> Any:
        try:
            async with self._client() as client:
                response = await client.request(method, path, params=params, json=json)
        except httpx.HTTPError as exc:
            logger.error("Judge0 request failed: %s %s: %s", method, path, str(exc))
            raise SandboxUnavailableError(
                "Execution server is not reachable right now. Please try again later."
            ) from exc
        if response.status_code >= 400:
            message = _error_message(response)
            logger.error("Judge0 %s %s returned %d: %s", method, path, response.status_code, message)
            raise SandboxUnavailableError(message)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            logger.error(
                "Judge0 %s %s returned a non-JSON body (content-type=%s)",
                method,
                path,
                response.headers.get("content-type"),
            )
            raise SandboxUnavailableError("Execution server returned an unreadable response.") from exc

    async def submit(self, language_id: int, source_code: str, stdin: str = "") -> Dict[str, Any]:
        """Dispatch a submission and return the finished Judge0 payload."""
        body: Dict[str, Any] = {
            "source_code": source_code,
            "language_id": int(language_id),
            "stdin": stdin or "",
            "enable_per_process_and_thread_time_limit": True,
            "enable_per_process_and_thread_memory_limit": True,
        }
        if settings.JUDGE0_CPU_TIME_LIMIT:
            body["cpu_time_limit"] = settings.JUDGE0_CPU_TIME_LIMIT
        if settings.JUDGE0_MEMORY_LIMIT:
            body["memory_limit"] = settings.JUDGE0_MEMORY_LIMIT

        params = {
            "base64_encoded": "false",
            "wait": "true" if self.wait_for_result else "false",
            "fields": SUBMISSION_FIELDS,
        }
        logger.info(
            "Submitting to Judge0 (language_id=%d, source_len=%d, stdin_len=%d, wait=%s)",
            body["language_id"],
            len(source_code),
            len(body["stdin"]),
            params["wait"],
        )
        payload = await self._request("POST", "/submissions", params=params, json=body)
        if self.wait_for_result and isinstance(payload, dict) and payload.get("status"):
            return payload

        token = payload.get("token") if isinstance(payload, dict) else None
        if not token:
            raise SandboxUnavailableError("Sandbox did not return a submission token")
        return await self.wait_for_submission(token)

    async def get_submission(self, token: str) -> Dict[str, Any]:
        params = {"base64_encoded": "false", "fields": SUBMISSION_FIELDS}
        return await self._request("GET", f"/submissions/{token}", params=params)

    async def wait_for_submission(self, token: str) -> Dict[str, Any]:
        """Poll a submission until it leaves In Queue / Processing."""
        waited = 0.0
        while True:
            payload = await self.get_submission(token)
            status = payload.get("status") or {}
            status_id = status.get("id") if isinstance(status, dict) else payload.get("status_id")
            if status_id not in PENDING_STATUS_IDS:
                return payload
            logger.debug("Submission %s still pending (status_id=%s)", token, status_id)
            if waited + self.poll_interval_seconds > self.max_wait_seconds:
                raise SandboxTimeoutError("Execution timed out. Please try again.")
            await self._sleep(self.poll_interval_seconds)
            waited += self.poll_interval_seconds

    async def run(self, language_label: str | None, source_code: str | None, stdin: str | None = "") -> ExecutionResult:
        """Run source code for a question's language label and classify the verdict."""
        language = resolve_language(language_label)
        if language is None:
            raise UnsupportedLanguageError(language_label, supported_languages())
        if not source_code or not source_code.strip():
            raise EmptySourceError()

        stdin = stdin or ""
        if not stdin.strip() and detect_input_requirement(source_code, language):
            logger.info("Skipping dispatch: %s program reads stdin and none was provided", language.name)
            return ExecutionResult.needs_input(language.name)

        source = source_code.strip()
        if language.name == "Java":
            source = preprocess_java_source(source)

        payload = await self.submit(language.judge0_id, source, stdin)
        result = result_from_submission(payload)
        logger.info(
            "Judge0 run finished (language=%s, status=%s, has_stdout=%s)",
            language.name,
            result.status_label,
            result.stdout is not None,
        )
        return result

    async def check_connection(self) -> Dict[str, Any]:
        """Health probe against the sandbox's /about endpoint."""
        try:
            about = await self._request("GET", "/about")
        except ExecutionError as exc:
            return {"success": False, "message": str(exc)}
        return {"success": True, "message": "Judge0 API is reachable", "version": (about or {}).get("version")}


def _error_message(response: httpx.Response) -> str:
    default = f"HTTP {response.status_code}"
    try:
        body = response.json()
    except ValueError:
        text = (response.text or "").strip()
        return text[:MAX_ERROR_TEXT] if text else default
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or body.get("detail") or default)
    return default

