"""
Tests for the HTTP surface.
"""

import threading
import time
from unittest.mock import AsyncMock, Mock, patch

import pytest
from fastapi.testclient import TestClient

import main_api
from main_api import app, get_pipeline
from rag_agent.exceptions import (
    BackendUnavailableError,
    ChatTimeoutError,
    ExtractionError,
    ToolLoopExceededError,
)
from rag_agent.models import AgentResponse, OrchestratorResponse


@pytest.fixture
def pipeline():
    pipeline = Mock()
    pipeline.provider_info.return_value = {
        'provider': 'ollama', 'label': 'Ollama (local)', 'chatModel': 'llama3.1',
        'embeddingModel': 'nomic-embed-text', 'baseUrl': 'http://localhost:11434'
    }
    pipeline.get_system_status.return_value = {'pipeline_status': 'healthy'}
    pipeline.chat = AsyncMock(return_value=AgentResponse(answer="yes", context_used="ctx", history_length=2))
    pipeline.orchestrate = AsyncMock(return_value=OrchestratorResponse(answer="42", selected_specialist="DATA"))
    pipeline.ingest_document = AsyncMock(return_value=3)
    pipeline.ingest_all = AsyncMock(return_value=7)
    pipeline.reset = AsyncMock(return_value=None)
    return pipeline


@pytest.fixture
def client(pipeline):
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestEndpoints:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_info(self, client):
        response = client.get("/api/info")
        assert response.status_code == 200
        assert response.json()['provider'] == 'ollama'

    def test_status(self, client):
        assert client.get("/api/status").json() == {'pipeline_status': 'healthy'}

    def test_chat(self, client, pipeline):
        response = client.post("/api/chat", json={"message": "Is it covered?", "session_id": "s1"})

        assert response.status_code == 200
        assert response.json() == {"answer": "yes", "context_used": "ctx", "history_length": 2}
        pipeline.chat.assert_awaited_once_with("Is it covered?", session_id="s1")

    def test_orchestrate(self, client):
        response = client.post("/api/orchestrate", json={"message": "average?"})

        assert response.status_code == 200
        assert response.json() == {"answer": "42", "selected_specialist": "DATA"}

    @pytest.mark.parametrize("path", ["/api/chat", "/api/orchestrate"])
    @pytest.mark.parametrize("body", [{}, {"message": ""}, {"message": "   "}])
    def test_blank_message_is_bad_request(self, client, pipeline, path, body):
        response = client.post(path, json=body)

        assert response.status_code == 400
        pipeline.chat.assert_not_awaited()
        pipeline.orchestrate.assert_not_awaited()

    def test_upload(self, client, pipeline):
        response = client.post("/api/documents/upload", files={"file": ("notes.txt", b"hello", "text/plain")})

        assert response.status_code == 200
        assert response.json()['chunks'] == 3
        assert response.json()['filename'] == "notes.txt"
        pipeline.ingest_document.assert_awaited_once_with(b"hello", "notes.txt")

    def test_ingest_all(self, client):
        response = client.post("/api/documents/ingest-all")
        assert response.json()['chunks'] == 7

    def test_reset(self, client, pipeline):
        assert client.post("/api/reset").json() == {"status": "ok"}
        pipeline.reset.assert_awaited_once_with(session_id=None)

    def test_reset_session(self, client, pipeline):
        client.post("/api/reset", json={"session_id": "s1"})
        pipeline.reset.assert_awaited_once_with(session_id="s1")

    def test_clear_cache(self, client, pipeline):
        assert client.post("/api/cache/clear").json() == {"status": "ok"}
        pipeline.clear_cache.assert_called_once_with()


class TestErrorMapping:

    @pytest.mark.parametrize("error, status_code", [
        (BackendUnavailableError("down", status_code=503), 502),
        (ChatTimeoutError(1.0), 504),
        (ToolLoopExceededError(5), 500),
    ])
    def test_chat_errors(self, client, pipeline, error, status_code):
        pipeline.chat = AsyncMock(side_effect=error)

        response = client.post("/api/chat", json={"message": "hello"})

        assert response.status_code == status_code
        assert response.json()['error'] == type(error).__name__

    def test_upload_extraction_error(self, client, pipeline):
        pipeline.ingest_document = AsyncMock(side_effect=ExtractionError("Unsupported file format: .zip"))

        response = client.post("/api/documents/upload", files={"file": ("a.zip", b"PK", "application/zip")})

        assert response.status_code == 400
        assert "Unsupported" in response.json()['detail']


class TestPipelineDependency:

    @pytest.fixture(autouse=True)
    def fresh_pipeline(self):
        previous = main_api._pipeline
        main_api._pipeline = None
        yield
        main_api._pipeline = previous

    def test_concurrent_first_requests_build_one_pipeline(self):
        built = []

        def slow_pipeline():
            time.sleep(0.2)
            pipeline = Mock()
            built.append(pipeline)
            return pipeline

        results = []
        with patch('main_api.RAGPipeline', side_effect=slow_pipeline):
            threads = [threading.Thread(target=lambda: results.append(get_pipeline())) for _ in range(4)]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()

        assert len(built) == 1
        assert len(results) == 4
        assert all(result is built[0] for result in results)

    def test_failed_build_is_server_error(self):
        with patch('main_api.RAGPipeline', side_effect=RuntimeError("no config")):
            response = TestClient(app).get("/api/info")

        assert response.status_code == 500
        assert main_api._pipeline is None

    def test_shutdown_closes_pipeline(self):
        pipeline = Mock()
        pipeline.aclose = AsyncMock()
        pipeline.provider_info.return_value = {'provider': 'ollama'}

        with patch('main_api.RAGPipeline', return_value=pipeline):
            with TestClient(app) as client:
                assert client.get("/api/info").json() == {'provider': 'ollama'}

        pipeline.aclose.assert_awaited_once()
