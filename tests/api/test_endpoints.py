"""API tests for the HTTP surface, with services replaced by mocks."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

from policylens.api.dependencies import get_chat_service, get_processing_service, get_search_service
from policylens.core.exceptions import (
    ConversationNotFoundError,
    DocumentAlreadyProcessingError,
    EmbeddingError,
    ValidationError,
)
from policylens.main import app
from policylens.models.chat import (
    ChatResponse,
    ChatStreamEvent,
    ChatStreamEventType,
    ConversationView,
)
from policylens.models.events import ProcessingOutcome

from conftest import make_search_result


def _override(dependency, service):
    app.dependency_overrides[dependency] = lambda: service
    return service


def _stream_of(*events, error=None):
    async def stream(tenant, conversation_id, content):
        for event in events:
            yield event
        if error is not None:
            raise error
    return stream


class TestHealth:
    def test_health_check(self, test_client):
        response = test_client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root(self, test_client):
        response = test_client.get("/")

        assert response.status_code == 200
        assert response.json()["health"] == "/health"
        assert "X-Correlation-ID" in response.headers


class TestSearchEndpoint:
    def test_search_returns_items(self, test_client, tenant_headers):
        result = make_search_result(page_start=2, similarity=0.91)
        service = _override(get_search_service, MagicMock())
        service.search = AsyncMock(return_value=[result])

        response = test_client.post(
            "/api/v1/search",
            json={"query": "occurrence limit", "top_k": 5},
            headers=tenant_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] is True
        assert body["data"]["items"][0]["chunk_id"] == str(result.chunk_id)
        assert body["data"]["items"][0]["page_start"] == 2
        assert service.search.call_args.kwargs["top_k"] == 5

    def test_missing_tenant_header(self, test_client):
        _override(get_search_service, MagicMock())

        response = test_client.post("/api/v1/search", json={"query": "limits"})

        assert response.status_code == 422

    def test_embedding_failure_maps_to_502(self, test_client, tenant_headers):
        service = _override(get_search_service, MagicMock())
        service.search = AsyncMock(side_effect=EmbeddingError("model unavailable"))

        response = test_client.post("/api/v1/search", json={"query": "limits"}, headers=tenant_headers)

        assert response.status_code == 502
        assert response.headers["content-type"].startswith("application/problem+json")
        assert response.json()["detail"] == "model unavailable"


class TestConversationEndpoints:
    def test_create_conversation(self, test_client, tenant_headers):
        conversation = ConversationView(id=uuid4(), title="GL questions", created_at=datetime.now(timezone.utc))
        service = _override(get_chat_service, MagicMock())
        service.create_conversation = AsyncMock(return_value=conversation)

        response = test_client.post(
            "/api/v1/conversations", json={"title": "GL questions"}, headers=tenant_headers
        )

        assert response.status_code == 201
        assert response.json()["data"]["id"] == str(conversation.id)

    def test_unknown_conversation_is_404(self, test_client, tenant_headers):
        service = _override(get_chat_service, MagicMock())
        service.get_conversation = AsyncMock(side_effect=ConversationNotFoundError("Conversation not found"))

        response = test_client.get(f"/api/v1/conversations/{uuid4()}", headers=tenant_headers)

        assert response.status_code == 404
        assert response.json()["title"] == "Conversation Not Found"

    def test_send_message(self, test_client, tenant_headers):
        chat_response = ChatResponse(message_id=uuid4(), content="The limit is $1M.", input_tokens=10, output_tokens=5)
        service = _override(get_chat_service, MagicMock())
        service.send_message = AsyncMock(return_value=chat_response)
        conversation_id = uuid4()

        response = test_client.post(
            f"/api/v1/conversations/{conversation_id}/messages",
            json={"content": "What is the limit?"},
            headers=tenant_headers,
        )

        assert response.status_code == 200
        assert response.json()["data"]["content"] == "The limit is $1M."
        assert service.send_message.call_args.args[1] == conversation_id

    def test_invalid_message_is_422(self, test_client, tenant_headers):
        service = _override(get_chat_service, MagicMock())
        service.send_message = AsyncMock(side_effect=ValidationError("Message cannot be empty"))

        response = test_client.post(
            f"/api/v1/conversations/{uuid4()}/messages",
            json={"content": " "},
            headers=tenant_headers,
        )

        assert response.status_code == 422

    def test_stream_message_sse(self, test_client, tenant_headers):
        message_id = uuid4()
        service = _override(get_chat_service, MagicMock())
        service.stream_message = _stream_of(
            ChatStreamEvent(type=ChatStreamEventType.TOKEN, text="The limit"),
            ChatStreamEvent(type=ChatStreamEventType.TOKEN, text=" is $1M."),
            ChatStreamEvent(type=ChatStreamEventType.USAGE, input_tokens=10, output_tokens=4),
            ChatStreamEvent(type=ChatStreamEventType.DONE, message_id=message_id),
        )

        response = test_client.post(
            f"/api/v1/conversations/{uuid4()}/messages/stream",
            json={"content": "What is the limit?"},
            headers=tenant_headers,
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        body = response.text
        assert body.index("event: token") < body.index("event: usage") < body.index("event: done")
        assert '"text": "The limit"' in body
        assert str(message_id) in body

    def test_stream_unknown_conversation_is_404(self, test_client, tenant_headers):
        service = _override(get_chat_service, MagicMock())
        service.stream_message = _stream_of(error=ConversationNotFoundError("Conversation not found"))

        response = test_client.post(
            f"/api/v1/conversations/{uuid4()}/messages/stream",
            json={"content": "Hello"},
            headers=tenant_headers,
        )

        assert response.status_code == 404

    def test_stream_failure_after_start_emits_error_event(self, test_client, tenant_headers):
        service = _override(get_chat_service, MagicMock())
        service.stream_message = _stream_of(
            ChatStreamEvent(type=ChatStreamEventType.TOKEN, text="partial"),
            error=EmbeddingError("provider dropped the stream"),
        )

        response = test_client.post(
            f"/api/v1/conversations/{uuid4()}/messages/stream",
            json={"content": "Hello"},
            headers=tenant_headers,
        )

        assert response.status_code == 200
        assert "event: error" in response.text
        assert "provider dropped the stream" in response.text


class TestDocumentEndpoint:
    def _service(self, outcome=None):
        service = _override(get_processing_service, MagicMock())
        service.register_document = AsyncMock()
        service.process_document = AsyncMock(return_value=outcome)
        return service

    def test_process_document(self, test_client, tenant_headers):
        document_id = uuid4()
        outcome = ProcessingOutcome(
            document_id=document_id,
            status="completed",
            coverage_count=2,
            chunk_count=14,
            embedded_chunk_count=14,
            confidence=0.84,
            needs_human_review=False,
        )
        service = self._service(outcome)

        response = test_client.post(
            f"/api/v1/documents/{document_id}/process",
            files={"file": ("policy.pdf", b"%PDF-1.7 content", "application/pdf")},
            headers=tenant_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] is True
        assert body["data"]["chunk_count"] == 14
        assert service.register_document.call_args.args[1] == "policy.pdf"
        assert service.process_document.call_args.args[2] == b"%PDF-1.7 content"

    def test_failed_run_reports_status_false(self, test_client, tenant_headers):
        document_id = uuid4()
        self._service(ProcessingOutcome(document_id=document_id, status="failed", error="Invalid PDF"))

        response = test_client.post(
            f"/api/v1/documents/{document_id}/process",
            files={"file": ("policy.pdf", b"%PDF", "application/pdf")},
            headers=tenant_headers,
        )

        assert response.status_code == 200
        assert response.json()["status"] is False
        assert response.json()["data"]["error"] == "Invalid PDF"

    def test_empty_upload_rejected(self, test_client, tenant_headers):
        service = self._service()

        response = test_client.post(
            f"/api/v1/documents/{uuid4()}/process",
            files={"file": ("policy.pdf", b"", "application/pdf")},
            headers=tenant_headers,
        )

        assert response.status_code == 422
        service.process_document.assert_not_awaited()

    def test_non_pdf_rejected(self, test_client, tenant_headers):
        self._service()

        response = test_client.post(
            f"/api/v1/documents/{uuid4()}/process",
            files={"file": ("notes.txt", b"hello", "text/plain")},
            headers=tenant_headers,
        )

        assert response.status_code == 422
        assert "Unsupported content type" in response.json()["detail"]

    def test_concurrent_processing_is_409(self, test_client, tenant_headers):
        service = self._service()
        service.process_document.side_effect = DocumentAlreadyProcessingError("Document is already being processed")

        response = test_client.post(
            f"/api/v1/documents/{uuid4()}/process",
            files={"file": ("policy.pdf", b"%PDF", "application/pdf")},
            headers=tenant_headers,
        )

        assert response.status_code == 409
