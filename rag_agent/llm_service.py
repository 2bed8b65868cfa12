import asyncio
import json
import logging
import random
from typing import Any, Dict, List, Optional, Sequence

import httpx

from .config import ProviderConfig
from .exceptions import BackendUnavailableError
from .models import Completion, ConversationTurn, ToolCall, ToolExchange
from .utils import extract_json_from_text

RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

logger = logging.getLogger(__name__)


async def post_json_with_retries(
    client: httpx.AsyncClient,
    url: str,
    payload: Dict[str, Any],
    headers: Dict[str, str],
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 10.0
) -> Dict[str, Any]:
    """
    POST a JSON payload with exponential backoff on transient failures.

    Transport errors and retryable status codes are retried; any other
    error status fails immediately.

    Raises:
        BackendUnavailableError: When the request cannot be completed
    """
    last_error = "no attempt made"
    last_status: Optional[int] = None

    for attempt in range(max_attempts):
        try:
            response = await client.post(url, json=payload, headers=headers)
        except httpx.TransportError as e:
            last_error, last_status = f"{type(e).__name__}: {e}", None
        else:
            if response.status_code in RETRYABLE_STATUS_CODES:
                last_error, last_status = f"HTTP {response.status_code}", response.status_code
            elif response.is_error:
                raise BackendUnavailableError(
                    f"Backend rejected request to {url} with HTTP {response.status_code}: {response.text[:200]}",
                    status_code=response.status_code
                )
            else:
                try:
                    return response.json()
                except ValueError as e:
                    raise BackendUnavailableError(f"Backend returned invalid JSON from {url}") from e

        logger.warning(f"Request to {url} failed (attempt {attempt + 1}/{max_attempts}): {last_error}")
        if attempt < max_attempts - 1:
            delay = min(initial_delay * (2 ** attempt), max_delay)
            wait_time = delay + delay * random.uniform(0.1, 0.5)
            logger.info(f"Retrying in {wait_time:.2f} seconds...")
            await asyncio.sleep(wait_time)

    raise BackendUnavailableError(
        f"Request to {url} failed after {max_attempts} attempts: {last_error}",
        status_code=last_status
    )


class LLMService:
    """
    Generation backend speaking the OpenAI chat-completions protocol.

    Works with any provider in the provider table; the endpoint is
    ``base_url + completions_path`` of the resolved provider.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        provider: ProviderConfig,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.config = config
        self.llm_config = config.get('llm', {})
        self.provider = provider
        self.logger = logging.getLogger(__name__)

        self.model = provider.chat_model
        self.temperature = self.llm_config.get('temperature', 0.2)
        self.max_tokens = self.llm_config.get('max_tokens', 1024)
        self.timeout = self.llm_config.get('timeout', 60.0)

        retry_config = self.llm_config.get('retries', {})
        self.max_attempts = retry_config.get('max_attempts', 3)
        self.initial_delay = retry_config.get('initial_delay', 1.0)
        self.max_delay = retry_config.get('max_delay', 10.0)

        self._client = http_client or httpx.AsyncClient(timeout=self.timeout)

        if not provider.api_key:
            self.logger.warning(f"No API key configured for {provider.label}. Requests may be rejected.")

    async def complete(
        self,
        system_prompt: str,
        conversation: Sequence[ConversationTurn],
        user_prompt: str,
        tools: Optional[List[Dict[str, Any]]] = None,
        tool_exchanges: Sequence[ToolExchange] = ()
    ) -> Completion:
        """
        Ask the backend for the next assistant turn.

        Args:
            system_prompt: Instruction placed first in the message list
            conversation: Earlier turns of the same session
            user_prompt: The prompt for this turn
            tools: Function-tool definitions the model may call
            tool_exchanges: Tool requests and results already produced for this turn

        Returns:
            Completion carrying either final text or requested tool calls
        """
        payload: Dict[str, Any] = {
            'model': self.model,
            'messages': self._build_messages(system_prompt, conversation, user_prompt, tool_exchanges),
            'temperature': self.temperature,
            'max_tokens': self.max_tokens
        }
        if tools:
            payload['tools'] = tools
            payload['tool_choice'] = 'auto'

        data = await post_json_with_retries(
            self._client,
            self.provider.chat_url,
            payload,
            self._headers(),
            max_attempts=self.max_attempts,
            initial_delay=self.initial_delay,
            max_delay=self.max_delay
        )
        completion = self._parse_completion(data)
        self.logger.debug(
            f"Completion from {completion.model or self.model}: "
            f"{len(completion.tool_calls)} tool call(s), {len(completion.text)} chars"
        )
        return completion

    def _headers(self) -> Dict[str, str]:
        headers = {'Content-Type': 'application/json'}
        if self.provider.api_key:
            headers['Authorization'] = f"Bearer {self.provider.api_key}"
        return headers

    @staticmethod
    def _build_messages(
        system_prompt: str,
        conversation: Sequence[ConversationTurn],
        user_prompt: str,
        tool_exchanges: Sequence[ToolExchange]
    ) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = [{'role': 'system', 'content': system_prompt}]
        messages.extend({'role': turn.role.value, 'content': turn.text} for turn in conversation)
        messages.append({'role': 'user', 'content': user_prompt})

        for exchange in tool_exchanges:
            messages.append({
                'role': 'assistant',
                'content': exchange.completion.text or None,
                'tool_calls': [
                    {
                        'id': call.id,
                        'type': 'function',
                        'function': {'name': call.name, 'arguments': json.dumps(call.arguments)}
                    }
                    for call in exchange.completion.tool_calls
                ]
            })
            for result in exchange.results:
                messages.append({
                    'role': 'tool',
                    'tool_call_id': result.call_id,
                    'content': json.dumps(result.content)
                })

        return messages

    def _parse_completion(self, data: Dict[str, Any]) -> Completion:
        """Extract text and tool calls from a chat-completions response."""
        try:
            message = data['choices'][0]['message']
        except (KeyError, IndexError, TypeError) as e:
            raise BackendUnavailableError(f"Malformed completion response: {str(data)[:200]}") from e

        tool_calls = []
        for index, raw_call in enumerate(message.get('tool_calls') or []):
            function = raw_call.get('function', {})
            arguments = function.get('arguments') or {}
            if isinstance(arguments, str):
                parsed = extract_json_from_text(arguments) if arguments.strip() else {}
                if parsed is None:
                    self.logger.warning(f"Could not parse arguments for tool '{function.get('name')}': {arguments[:100]}")
                    parsed = {}
                arguments = parsed
            if not isinstance(arguments, dict):
                self.logger.warning(f"Ignoring non-object arguments for tool '{function.get('name')}': {str(arguments)[:100]}")
                arguments = {}
            tool_calls.append(ToolCall(
                id=raw_call.get('id') or f"call_{index}",
                name=function.get('name', ''),
                arguments=arguments
            ))

        return Completion(
            text=(message.get('content') or '').strip(),
            tool_calls=tool_calls,
            model=data.get('model')
        )

    async def aclose(self) -> None:
        await self._client.aclose()
