"""
Language-model boundary: complete(system_prompt, user_message, temperature) → text.

Calls go through the 'openai' circuit breaker.
"""
import json
import logging

from expansion_engine.config import EXPANSION_MODEL
from expansion_engine.errors import ConfigurationError
from expansion_engine.extensions import openai_client as client

logger = logging.getLogger('services.llm_client')


def _chat_completion(**kwargs):
    from expansion_engine.services.circuit_breaker import get_breaker
    return get_breaker('openai').call(client.chat.completions.create, **kwargs)


def complete(system_prompt: str, user_message: str, temperature: float = 0.0, model: str = None) -> str:
    """Single request/response chat completion. Raises ConfigurationError without a key."""
    if client is None:
        raise ConfigurationError("OPENAI_API_KEY is not set")
    response = _chat_completion(
        model=model or EXPANSION_MODEL,
        temperature=temperature,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_message},
        ],
    )
    text = response.choices[0].message.content or ''
    logger.debug("LLM response: %d chars", len(text))
    return text


def model_name() -> str:
    return EXPANSION_MODEL


def parse_json_object(text: str):
    """
    Parse the JSON object embedded in a model response.

    Takes everything from the first "{" to the last "}" so code fences or
    leading prose are tolerated. Raises ValueError if there is no object.
    """
    trimmed = (text or '').strip()
    start = trimmed.find('{')
    end = trimmed.rfind('}')
    if start == -1 or end <= start:
        raise ValueError("No JSON object found in LLM response")
    return json.loads(trimmed[start:end + 1])
