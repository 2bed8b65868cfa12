"""
Multi-agent routing.

A router model classifies each query into a specialist label; the
orchestrator then hands the query to the agent registered for that label.
Classification and dispatch are separate so specialists can be swapped
without touching the classifier.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel

from .agent import RAGAgent
from .conversation import ConversationHistory
from .exceptions import ChatTimeoutError, ConfigurationError, InvalidRequestError
from .llm_service import LLMService
from .models import OrchestratorResponse

logger = logging.getLogger(__name__)


class SpecialistLabel(str, Enum):
    RAG = "RAG"
    DATA = "DATA"
    SUMMARY = "SUMMARY"


ROUTER_PROMPT = """You are a router agent. Your job is to analyze the user's query
and decide which specialist should handle it.

Available specialists:
- RAG: For questions about documents and information lookup
- DATA: For data analysis, statistics and calculations
- SUMMARY: For summaries of long documents

Reply ONLY with the specialist name: RAG, DATA, or SUMMARY."""


class RoutingDecision(BaseModel):
    label: SpecialistLabel
    raw_label: str
    fallback: bool = False


class QueryRouter:
    """Classifies queries into a SpecialistLabel using the generation backend."""

    def __init__(self, llm_service: LLMService, instruction: str = ROUTER_PROMPT):
        self.llm_service = llm_service
        self.instruction = instruction

    @staticmethod
    def normalize(raw_label: str) -> RoutingDecision:
        """Map a raw backend reply onto a label; anything unrecognized routes to RAG."""
        normalized = (raw_label or '').strip().upper()
        try:
            return RoutingDecision(label=SpecialistLabel(normalized), raw_label=raw_label or '')
        except ValueError:
            logger.warning(f"Router returned unrecognized label '{normalized}', falling back to RAG")
            return RoutingDecision(label=SpecialistLabel.RAG, raw_label=raw_label or '', fallback=True)

    async def classify(self, query: str) -> RoutingDecision:
        completion = await self.llm_service.complete(self.instruction, (), query)
        decision = self.normalize(completion.text)
        logger.info(f"Routed query to {decision.label.value}")
        return decision


class MultiAgentOrchestrator:
    """Routes each query to a specialist agent.

    ``specialists`` maps labels to agents. Labels without an entry are
    served by the RAG specialist, which must always be present.
    """

    def __init__(
        self,
        router: QueryRouter,
        specialists: Mapping[SpecialistLabel, RAGAgent],
        config: Optional[Dict[str, Any]] = None
    ):
        if SpecialistLabel.RAG not in specialists:
            raise ConfigurationError("A RAG specialist must be registered")
        self.router = router
        self.specialists: Dict[SpecialistLabel, RAGAgent] = dict(specialists)
        self.timeout_seconds = (config or {}).get('router', {}).get('timeout_seconds', 30.0)

    @classmethod
    def with_single_agent(
        cls,
        router: QueryRouter,
        agent: RAGAgent,
        config: Optional[Dict[str, Any]] = None
    ) -> "MultiAgentOrchestrator":
        """Register one agent under every label."""
        return cls(router, {label: agent for label in SpecialistLabel}, config=config)

    def specialist_for(self, label: SpecialistLabel) -> RAGAgent:
        return self.specialists.get(label, self.specialists[SpecialistLabel.RAG])

    async def orchestrate(
        self,
        user_query: str,
        history: Optional[ConversationHistory] = None
    ) -> OrchestratorResponse:
        """
        Classify a query and answer it with the selected specialist.

        Raises:
            InvalidRequestError: If the query is blank
            ChatTimeoutError: If classification does not finish in time
        """
        if not user_query or not user_query.strip():
            raise InvalidRequestError("Message must not be empty")

        try:
            decision = await asyncio.wait_for(self.router.classify(user_query), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            logger.error(f"Routing timed out after {self.timeout_seconds}s")
            raise ChatTimeoutError(self.timeout_seconds) from e

        agent = self.specialist_for(decision.label)
        response = await agent.chat(user_query, history=history)
        return OrchestratorResponse(answer=response.answer, selected_specialist=decision.label.value)
