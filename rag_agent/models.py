"""
Domain models shared across the RAG agent.

- Document / Chunk / IndexEntry / SearchResult: ingestion and retrieval units
- ConversationTurn: one message of a conversation history
- ToolCall / ToolResult / ToolExchange / Completion: generation backend traffic
- Tool request and response contracts
- AgentResponse / OrchestratorResponse: results returned to callers
"""

import uuid
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Document(BaseModel):
    """Extracted text of one file, consumed once by the chunker."""

    doc_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    text: str
    source: str
    path: str
    checksum: str = ""


class Chunk(BaseModel):
    """Contiguous token span of a Document."""

    model_config = ConfigDict(frozen=True)

    chunk_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    doc_id: str
    text: str
    chunk_index: int
    token_start: int
    token_end: int
    source: str
    path: str

    @property
    def token_count(self) -> int:
        return self.token_end - self.token_start


class IndexEntry(BaseModel):
    """A chunk together with its embedding, as stored in the vector index."""

    model_config = ConfigDict(frozen=True)

    chunk: Chunk
    embedding: List[float]
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_chunk(cls, chunk: Chunk, embedding: List[float], **extra: Any) -> "IndexEntry":
        metadata = {'source': chunk.source, 'path': chunk.path, 'doc_id': chunk.doc_id}
        metadata.update(extra)
        return cls(chunk=chunk, embedding=[float(v) for v in embedding], metadata=metadata)


class SearchResult(BaseModel):
    """A retrieved chunk and its cosine similarity to the query."""

    chunk: Chunk
    score: float = Field(ge=0.0, le=1.0)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def source(self) -> str:
        return self.metadata.get('source') or self.chunk.source or 'unknown'


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ConversationTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Role
    text: str


class ToolCall(BaseModel):
    """A tool invocation requested by the generation backend."""

    id: str
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    """Outcome of executing one ToolCall, fed back to the backend."""

    call_id: str
    name: str
    content: Dict[str, Any]
    is_error: bool = False


class Completion(BaseModel):
    """One response of the generation backend."""

    text: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    model: Optional[str] = None

    @property
    def requests_tools(self) -> bool:
        return bool(self.tool_calls)


class ToolExchange(BaseModel):
    """A backend turn that requested tools, plus the results of running them."""

    completion: Completion
    results: List[ToolResult]


class SearchDocumentsRequest(BaseModel):
    query: str = Field(min_length=1)
    max_results: int = 5

    @field_validator('max_results')
    @classmethod
    def _default_when_not_positive(cls, value: int) -> int:
        return value if value > 0 else 5


class SearchDocumentsResponse(BaseModel):
    context: str
    has_results: bool


class AnalyzeDataRequest(BaseModel):
    values: List[float] = Field(default_factory=list)
    description: Optional[str] = None


class AnalysisStats(BaseModel):
    """Descriptive statistics of a numeric series."""

    mean: float = 0.0
    median: float = 0.0
    min: float = 0.0
    max: float = 0.0
    standard_deviation: float = 0.0
    count: int = 0
    summary: str = ""


class AgentResponse(BaseModel):
    answer: str
    context_used: str
    history_length: int


class OrchestratorResponse(BaseModel):
    answer: str
    selected_specialist: str
