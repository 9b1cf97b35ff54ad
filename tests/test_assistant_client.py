"""
Tests for the Assistants v2 HTTP client.

Uses httpx.MockTransport, so requests never leave the process.
"""

import json

import httpx
import pytest

from zenio.config import AssistantSettings
from zenio.models.conversation import RunStatus, ToolOutput
from zenio.services.assistant import (
    AssistantAuthError,
    AssistantClient,
    AssistantRateLimitError,
    AssistantRequestError,
    AssistantTransportError,
    ThreadBusyError,
)


SETTINGS = AssistantSettings(api_key="sk-test", assistant_id="asst_123")


def make_client(handler) -> AssistantClient:
    return AssistantClient(settings=SETTINGS, transport=httpx.MockTransport(handler))


def error_response(status: int, message: str) -> httpx.Response:
    return httpx.Response(status, json={"error": {"message": message}})


class TestRequests:

    @pytest.mark.asyncio
    async def test_headers_and_thread_creation(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["beta"] = request.headers["OpenAI-Beta"]
            seen["path"] = request.url.path
            return httpx.Response(200, json={"id": "thread_new"})

        client = make_client(handler)
        assert await client.create_thread() == "thread_new"
        assert seen == {"auth": "Bearer sk-test", "beta": "assistants=v2", "path": "/v1/threads"}
        await client.aclose()

    @pytest.mark.asyncio
    async def test_create_run_sends_assistant_and_instructions(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"id": "run_1", "thread_id": "thread_a", "status": "queued"})

        run = await make_client(handler).create_run("thread_a", "Fecha de hoy: 2025-07-20.")
        assert run.status == RunStatus.QUEUED
        assert bodies == [{"assistant_id": "asst_123", "additional_instructions": "Fecha de hoy: 2025-07-20."}]

    @pytest.mark.asyncio
    async def test_submit_tool_outputs_body(self):
        bodies = []

        def handler(request):
            assert request.url.path.endswith("/runs/run_1/submit_tool_outputs")
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"id": "run_1", "thread_id": "thread_a", "status": "queued"})

        await make_client(handler).submit_tool_outputs(
            "thread_a", "run_1", [ToolOutput(tool_call_id="call_1", output='{"success": true}')]
        )
        assert bodies == [{"tool_outputs": [{"tool_call_id": "call_1", "output": '{"success": true}'}]}]

    @pytest.mark.asyncio
    async def test_list_messages_newest_first(self):
        def handler(request):
            assert request.url.params["order"] == "desc"
            return httpx.Response(200, json={"data": [
                {"id": "m2", "role": "assistant", "content": [{"type": "text", "text": {"value": "¡Hola Ana!"}}]},
                {"id": "m1", "role": "user", "content": [{"type": "text", "text": {"value": "Hola"}}]},
            ]})

        messages = await make_client(handler).list_messages("thread_a")
        assert [(m.role, m.text) for m in messages] == [("assistant", "¡Hola Ana!"), ("user", "Hola")]


class TestErrorMapping:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,message,error_type", [
        (401, "Incorrect API key provided", AssistantAuthError),
        (429, "Rate limit reached", AssistantRateLimitError),
        (400, "Can't add messages to thread_a while a run run_9 is active.", ThreadBusyError),
        (404, "No thread found", AssistantRequestError),
        (500, "The server had an error", AssistantRequestError),
    ])
    async def test_status_codes(self, status, message, error_type):
        client = make_client(lambda request: error_response(status, message))
        with pytest.raises(error_type) as exc_info:
            await client.post_message("thread_a", "Hola")
        assert message in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_request_error_keeps_status(self):
        client = make_client(lambda request: error_response(404, "No run found"))
        with pytest.raises(AssistantRequestError) as exc_info:
            await client.cancel_run("thread_a", "run_x")
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_non_json_error_body(self):
        client = make_client(lambda request: httpx.Response(502, text="Bad Gateway"))
        with pytest.raises(AssistantRequestError, match="Bad Gateway"):
            await client.create_thread()

    @pytest.mark.asyncio
    async def test_transport_error_on_write_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(AssistantTransportError):
            await make_client(handler).create_run("thread_a")
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_transport_error_on_read_is_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                raise httpx.ReadTimeout("timed out", request=request)
            return httpx.Response(200, json={"id": "run_1", "thread_id": "thread_a", "status": "completed"})

        run = await make_client(handler).get_run("thread_a", "run_1")
        assert run.status == RunStatus.COMPLETED
        assert len(calls) == 3


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
