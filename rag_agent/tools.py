"""Tools the generation backend may call, and the registry that runs them.

Each tool declares a pydantic request model used to validate the arguments
the model produced, plus an explicit JSON schema advertised to the backend
in OpenAI function-tool format.
"""

import logging
from typing import Any, ClassVar, Dict, List, Type

import numpy as np
from pydantic import BaseModel, ValidationError

from .exceptions import UnknownToolError
from .models import (
    AnalysisStats,
    AnalyzeDataRequest,
    SearchDocumentsRequest,
    SearchDocumentsResponse,
    ToolCall,
    ToolResult,
)
from .retrieval_service import NO_RESULTS_MESSAGE, RetrievalService

logger = logging.getLogger(__name__)


class Tool:
    """Base class for a callable tool."""

    name: ClassVar[str]
    description: ClassVar[str]
    parameters: ClassVar[Dict[str, Any]]
    request_model: ClassVar[Type[BaseModel]]

    async def run(self, request: BaseModel) -> BaseModel:
        raise NotImplementedError

    def definition(self) -> Dict[str, Any]:
        return {
            'type': 'function',
            'function': {
                'name': self.name,
                'description': self.description,
                'parameters': self.parameters
            }
        }


class SearchDocumentsTool(Tool):
    name = 'search_documents'
    description = (
        "Search the stored documents for relevant information. "
        "Useful for answering questions about specific document content."
    )
    parameters = {
        'type': 'object',
        'properties': {
            'query': {'type': 'string', 'description': 'What to look for'},
            'max_results': {'type': 'integer', 'description': 'Maximum number of passages to return', 'default': 5}
        },
        'required': ['query']
    }
    request_model = SearchDocumentsRequest

    def __init__(self, retrieval_service: RetrievalService):
        self.retrieval_service = retrieval_service

    async def run(self, request: SearchDocumentsRequest) -> SearchDocumentsResponse:
        context = await self.retrieval_service.search_and_format(request.query, top_k=request.max_results)
        return SearchDocumentsResponse(context=context, has_results=context != NO_RESULTS_MESSAGE)


class DataAnalysisTool(Tool):
    name = 'analyze_data'
    description = (
        "Analyze numeric data: computes statistics such as mean, median, "
        "maximum, minimum and standard deviation of a series of numbers."
    )
    parameters = {
        'type': 'object',
        'properties': {
            'values': {'type': 'array', 'items': {'type': 'number'}, 'description': 'Numbers to analyze'},
            'description': {'type': 'string', 'description': 'What the numbers represent'}
        },
        'required': ['values']
    }
    request_model = AnalyzeDataRequest

    async def run(self, request: AnalyzeDataRequest) -> AnalysisStats:
        return self.analyze(request.values)

    @staticmethod
    def analyze(values: List[float]) -> AnalysisStats:
        if not values:
            return AnalysisStats(summary="No data provided")

        data = np.asarray(values, dtype=np.float64)
        return AnalysisStats(
            mean=float(np.mean(data)),
            median=float(np.median(data)),
            min=float(np.min(data)),
            max=float(np.max(data)),
            # Population standard deviation
            standard_deviation=float(np.std(data, ddof=0)),
            count=int(data.size),
            summary=f"Analysis of {data.size} values completed"
        )


class ToolRegistry:
    """Registry of tools resolved by name at call time.

    - register: add a tool instance
    - definitions: function-tool schemas to send to the backend
    - execute: validate arguments, run the tool, return its response as a dict
    - execute_call: like execute, but never raises; failures become error results
    """

    def __init__(self) -> None:
        self._tools: Dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            logger.warning(f"Tool '{tool.name}' is already registered, replacing it")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool:
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownToolError(name)
        return tool

    def names(self) -> List[str]:
        return list(self._tools)

    def definitions(self) -> List[Dict[str, Any]]:
        return [tool.definition() for tool in self._tools.values()]

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    async def execute(self, name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run a tool with arguments produced by the model.

        Raises:
            UnknownToolError: If no tool with that name is registered
            pydantic.ValidationError: If the arguments do not fit the request model
        """
        tool = self.get(name)
        request = tool.request_model.model_validate(arguments or {})
        response = await tool.run(request)
        return response.model_dump()

    async def execute_call(self, call: ToolCall) -> ToolResult:
        """Execute a requested tool call, turning any failure into an error result."""
        try:
            content = await self.execute(call.name, call.arguments)
        except UnknownToolError as e:
            logger.warning(f"Backend requested unknown tool '{call.name}'")
            return self._error_result(call, e.message)
        except ValidationError as e:
            logger.warning(f"Invalid arguments for tool '{call.name}': {e.errors()}")
            return self._error_result(call, f"Invalid arguments: {e}")
        except Exception as e:
            logger.warning(f"Tool '{call.name}' execution failed: {e}", exc_info=True)
            return self._error_result(call, f"Tool failed: {e}")

        logger.debug(f"Tool '{call.name}' completed")
        return ToolResult(call_id=call.id, name=call.name, content=content)

    @staticmethod
    def _error_result(call: ToolCall, message: str) -> ToolResult:
        return ToolResult(call_id=call.id, name=call.name, content={'error': message}, is_error=True)

    @classmethod
    def default(cls, retrieval_service: RetrievalService) -> "ToolRegistry":
        """Create a registry holding the document search and data analysis tools."""
        registry = cls()
        registry.register(SearchDocumentsTool(retrieval_service))
        registry.register(DataAnalysisTool())
        return registry
