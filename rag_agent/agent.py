"""
Retrieval-augmented agent with a bounded tool-calling loop.

Every turn retrieves context for the query, embeds it in the prompt and
asks the generation backend for an answer. The backend may request tool
calls; those are executed through the ToolRegistry and fed back until the
backend produces a final answer or the round-trip limit is hit.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from .conversation import ConversationHistory
from .exceptions import ChatTimeoutError, InvalidRequestError, ToolLoopExceededError
from .llm_service import LLMService
from .models import AgentResponse, Completion, ToolExchange
from .retrieval_service import RetrievalService
from .tools import ToolRegistry

SYSTEM_PROMPT = """You are an expert assistant that answers questions based on the documents provided.

Rules:
1. ALWAYS ground your answers in the provided context
2. If you cannot find the information, say so honestly
3. Cite the sources when possible
4. You may use the available tools to search for more information or analyze data
5. If the question requires calculations, use the data analysis tool"""

AUGMENTED_PROMPT_TEMPLATE = """## Relevant document context:
{context}

## User question:
{query}

Answer based only on the context provided. If you need more information,
use the search_documents tool."""

RETRIEVAL_TOP_K = 5


class LoopState(str, Enum):
    AWAIT_BACKEND = "await_backend"
    EXECUTE_TOOL = "execute_tool"
    FINAL_ANSWER = "final_answer"


class RAGAgent:
    """Answers questions from the document corpus, keeping conversation history."""

    def __init__(
        self,
        llm_service: LLMService,
        retrieval_service: RetrievalService,
        tool_registry: ToolRegistry,
        config: Optional[Dict[str, Any]] = None,
        system_prompt: str = SYSTEM_PROMPT
    ):
        self.llm_service = llm_service
        self.retrieval_service = retrieval_service
        self.tool_registry = tool_registry
        self.system_prompt = system_prompt

        agent_config = (config or {}).get('agent', {})
        self.max_tool_rounds = agent_config.get('max_tool_rounds', 5)
        self.timeout_seconds = agent_config.get('timeout_seconds', 120.0)

        self.history = ConversationHistory()
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def build_prompt(context: str, query: str) -> str:
        return AUGMENTED_PROMPT_TEMPLATE.format(context=context, query=query)

    async def chat(self, user_query: str, history: Optional[ConversationHistory] = None) -> AgentResponse:
        """
        Answer a question using retrieved context.

        Args:
            user_query: The user's question
            history: Conversation to read and extend (the agent's own history when omitted)

        Returns:
            AgentResponse with the answer, the context used and the history size

        Raises:
            InvalidRequestError: If the query is blank
            ChatTimeoutError: If the turn does not finish within the configured timeout
            ToolLoopExceededError: If the backend keeps requesting tools
            BackendUnavailableError: If the embedding or generation backend fails
        """
        if not user_query or not user_query.strip():
            raise InvalidRequestError("Message must not be empty")

        history = self.history if history is None else history
        try:
            return await asyncio.wait_for(self._chat(user_query, history), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            self.logger.error(f"Chat timed out after {self.timeout_seconds}s")
            raise ChatTimeoutError(self.timeout_seconds) from e

    async def _chat(self, user_query: str, history: ConversationHistory) -> AgentResponse:
        context = await self.retrieval_service.search_and_format(user_query, top_k=RETRIEVAL_TOP_K)
        prompt = self.build_prompt(context, user_query)

        answer = await self._generate(prompt, history)

        history_length = await history.append_exchange(user_query, answer)
        return AgentResponse(answer=answer, context_used=context, history_length=history_length)

    async def _generate(self, prompt: str, history: ConversationHistory) -> str:
        conversation = history.snapshot()
        tools = self.tool_registry.definitions()
        exchanges: List[ToolExchange] = []
        completion: Optional[Completion] = None

        state = LoopState.AWAIT_BACKEND
        while state is not LoopState.FINAL_ANSWER:
            if state is LoopState.AWAIT_BACKEND:
                completion = await self.llm_service.complete(
                    self.system_prompt, conversation, prompt,
                    tools=tools, tool_exchanges=exchanges
                )
                state = LoopState.EXECUTE_TOOL if completion.requests_tools else LoopState.FINAL_ANSWER

            elif state is LoopState.EXECUTE_TOOL:
                if len(exchanges) >= self.max_tool_rounds:
                    raise ToolLoopExceededError(self.max_tool_rounds)

                results = [await self.tool_registry.execute_call(call) for call in completion.tool_calls]
                exchanges.append(ToolExchange(completion=completion, results=results))
                self.logger.debug(
                    f"Tool round {len(exchanges)}/{self.max_tool_rounds}: "
                    f"{', '.join(call.name for call in completion.tool_calls)}"
                )
                state = LoopState.AWAIT_BACKEND

        return completion.text

    async def reset(self, history: Optional[ConversationHistory] = None) -> None:
        """Clear the conversation history."""
        await (self.history if history is None else history).clear()
        self.logger.info("Conversation history cleared")
