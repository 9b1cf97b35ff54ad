"""
Assistants v2 HTTP Client

Implements ReasoningServiceInterface over the OpenAI Assistants v2 REST
API with an httpx AsyncClient.

Error mapping:
- Connection errors and timeouts  -> AssistantTransportError
- 401                             -> AssistantAuthError
- 429                             -> AssistantRateLimitError
- 400 "...while a run ... is active" -> ThreadBusyError
- anything else >= 400            -> AssistantRequestError(status_code)

Idempotent GETs are retried on transport errors with tenacity. Writes are
never retried here: a repeated create_run or submit_tool_outputs could
double-apply.
"""

from typing import Any, Optional

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from zenio.config import AssistantSettings, get_settings
from zenio.models.conversation import Run, ThreadMessage, ToolOutput
from zenio.services.assistant.interface import (
    AssistantAuthError,
    AssistantRateLimitError,
    AssistantRequestError,
    AssistantTransportError,
    ReasoningServiceInterface,
    ThreadBusyError,
)


logger = structlog.get_logger(__name__)

MESSAGE_PAGE_SIZE = 20
RUN_PAGE_SIZE = 10


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return response.text or f"HTTP {response.status_code}"


def error_for_response(response: httpx.Response) -> Exception:
    """Translate an error response into the assistant exception taxonomy."""
    message = _error_message(response)
    status = response.status_code
    if status == 401:
        return AssistantAuthError(message)
    if status == 429:
        return AssistantRateLimitError(message)
    if status == 400 and "while a run" in message.lower():
        return ThreadBusyError(message)
    return AssistantRequestError(message, status_code=status)


class AssistantClient(ReasoningServiceInterface):
    """
    Assistants v2 client bound to one assistant id.

    Args:
        settings: API key, assistant id, base URL and timeout.
        transport: Optional httpx transport; tests pass httpx.MockTransport.
    """

    def __init__(
        self,
        settings: Optional[AssistantSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._settings = settings or get_settings().assistant
        self._http = httpx.AsyncClient(
            base_url=self._settings.base_url,
            headers={
                "Authorization": f"Bearer {self._settings.api_key}",
                "Content-Type": "application/json",
                "OpenAI-Beta": self._settings.beta_header,
            },
            timeout=self._settings.request_timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        try:
            response = await self._http.request(method, path, json=json, params=params)
        except httpx.TransportError as e:
            logger.warning("assistant_transport_error", method=method, path=path, error=str(e))
            raise AssistantTransportError(str(e) or e.__class__.__name__) from e

        if response.status_code >= 400:
            error = error_for_response(response)
            logger.warning(
                "assistant_request_failed",
                method=method,
                path=path,
                status_code=response.status_code,
                error=str(error),
            )
            raise error
        return response.json()

    @retry(
        retry=retry_if_exception_type(AssistantTransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    async def _get(self, path: str, params: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        return await self._request("GET", path, params=params)

    async def create_thread(self) -> str:
        payload = await self._request("POST", "/threads", json={})
        logger.info("assistant_thread_created", thread_id=payload["id"])
        return payload["id"]

    async def post_message(self, thread_id: str, content: str, role: str = "user") -> None:
        await self._request(
            "POST",
            f"/threads/{thread_id}/messages",
            json={"role": role, "content": content},
        )

    async def create_run(
        self,
        thread_id: str,
        additional_instructions: Optional[str] = None,
    ) -> Run:
        body: dict[str, Any] = {"assistant_id": self._settings.assistant_id}
        if additional_instructions:
            body["additional_instructions"] = additional_instructions
        payload = await self._request("POST", f"/threads/{thread_id}/runs", json=body)
        return Run.from_api(payload)

    async def get_run(self, thread_id: str, run_id: str) -> Run:
        return Run.from_api(await self._get(f"/threads/{thread_id}/runs/{run_id}"))

    async def list_runs(self, thread_id: str) -> list[Run]:
        payload = await self._get(
            f"/threads/{thread_id}/runs",
            params={"limit": RUN_PAGE_SIZE, "order": "desc"},
        )
        return [Run.from_api(item) for item in payload.get("data") or []]

    async def cancel_run(self, thread_id: str, run_id: str) -> Run:
        payload = await self._request("POST", f"/threads/{thread_id}/runs/{run_id}/cancel")
        return Run.from_api(payload)

    async def submit_tool_outputs(
        self,
        thread_id: str,
        run_id: str,
        outputs: list[ToolOutput],
    ) -> Run:
        payload = await self._request(
            "POST",
            f"/threads/{thread_id}/runs/{run_id}/submit_tool_outputs",
            json={"tool_outputs": [output.to_api() for output in outputs]},
        )
        return Run.from_api(payload)

    async def list_messages(self, thread_id: str) -> list[ThreadMessage]:
        payload = await self._get(
            f"/threads/{thread_id}/messages",
            params={"limit": MESSAGE_PAGE_SIZE, "order": "desc"},
        )
        return [ThreadMessage.from_api(item) for item in payload.get("data") or []]
