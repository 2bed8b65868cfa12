import logging
import threading
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from rag_agent.exceptions import (
    BackendUnavailableError,
    ChatTimeoutError,
    ExtractionError,
    InvalidRequestError,
    RAGAgentError,
)
from rag_agent.models import AgentResponse, OrchestratorResponse
from rag_agent.rag_pipeline import RAGPipeline

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if _pipeline is not None:
        await _pipeline.aclose()


# --- FastAPI Application ---
app = FastAPI(
    lifespan=lifespan,
    title="Document RAG Agent API",
    description="Ask questions about your documents, with optional multi-agent routing.",
    version="1.0.0"
)


# --- Request Models ---
class MessageRequest(BaseModel):
    message: Optional[str] = None
    session_id: Optional[str] = None


class ResetRequest(BaseModel):
    session_id: Optional[str] = None


# --- Pipeline Dependency ---
# Built on first use so importing the module has no side effects.
# Sync dependencies run in a threadpool, so the build is serialized.
_pipeline: Optional[RAGPipeline] = None
_pipeline_lock = threading.Lock()


def get_pipeline() -> RAGPipeline:
    global _pipeline
    if _pipeline is not None:
        return _pipeline
    with _pipeline_lock:
        if _pipeline is None:
            try:
                _pipeline = RAGPipeline()
            except Exception as e:
                logger.critical(f"Failed to initialize RAG Pipeline: {e}", exc_info=True)
                raise HTTPException(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    detail="RAG Pipeline is not initialized. Check server logs."
                )
    return _pipeline


def _require_message(request: MessageRequest) -> str:
    if not request.message or not request.message.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message must not be empty")
    return request.message


# --- Error Mapping ---
ERROR_STATUS = {
    InvalidRequestError: status.HTTP_400_BAD_REQUEST,
    ExtractionError: status.HTTP_400_BAD_REQUEST,
    BackendUnavailableError: status.HTTP_502_BAD_GATEWAY,
    ChatTimeoutError: status.HTTP_504_GATEWAY_TIMEOUT,
}


@app.exception_handler(RAGAgentError)
async def rag_agent_error_handler(request: Request, exc: RAGAgentError):
    status_code = next(
        (code for error_type, code in ERROR_STATUS.items() if isinstance(exc, error_type)),
        status.HTTP_500_INTERNAL_SERVER_ERROR
    )
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=status_code, content={'error': type(exc).__name__, 'detail': exc.message})


# --- API Endpoints ---
@app.get("/health")
def health_check():
    """A simple health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/api/info")
def info(pipeline: RAGPipeline = Depends(get_pipeline)):
    """Provider and model in use, for display by a frontend."""
    return pipeline.provider_info()


@app.get("/api/status")
def system_status(pipeline: RAGPipeline = Depends(get_pipeline)):
    return pipeline.get_system_status()


@app.post("/api/chat", response_model=AgentResponse)
async def chat(request: MessageRequest, pipeline: RAGPipeline = Depends(get_pipeline)):
    """Answer a question with retrieval-augmented generation."""
    message = _require_message(request)
    return await pipeline.chat(message, session_id=request.session_id)


@app.post("/api/orchestrate", response_model=OrchestratorResponse)
async def orchestrate(request: MessageRequest, pipeline: RAGPipeline = Depends(get_pipeline)):
    """Route a question to a specialist agent before answering it."""
    message = _require_message(request)
    return await pipeline.orchestrate(message, session_id=request.session_id)


@app.post("/api/documents/upload")
async def upload_document(file: UploadFile = File(...), pipeline: RAGPipeline = Depends(get_pipeline)):
    """Ingest a single uploaded document."""
    content = await file.read()
    chunks = await pipeline.ingest_document(content, file.filename)
    return {"filename": file.filename, "chunks": chunks, "message": "Document ingested successfully"}


@app.post("/api/documents/ingest-all")
async def ingest_all(pipeline: RAGPipeline = Depends(get_pipeline)):
    """Ingest every document in the configured documents directory."""
    chunks = await pipeline.ingest_all()
    return {"chunks": chunks, "message": "All documents ingested"}


@app.post("/api/reset")
async def reset(request: Optional[ResetRequest] = None, pipeline: RAGPipeline = Depends(get_pipeline)):
    """Clear the conversation history."""
    await pipeline.reset(session_id=request.session_id if request else None)
    return {"status": "ok"}


@app.post("/api/cache/clear")
def clear_cache(pipeline: RAGPipeline = Depends(get_pipeline)):
    """Delete cached query embeddings."""
    pipeline.clear_cache()
    return {"status": "ok"}
