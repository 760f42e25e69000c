"""
LLM Client with Retry Logic & Error Handling
Provides resilient LLM execution with exponential backoff, a bounded
timeout and circuit breaker protection.
"""
import asyncio
import random
from typing import TypeVar, Any, Callable, Optional
from loguru import logger
from pydantic_ai import Agent
from src.config import get_settings
from src.utils.circuit_breaker import CircuitBreaker, get_behavior_ai_circuit

# Type variable for generic agent output
T = TypeVar('T')


class LLMError(Exception):
    """Recoverable LLM errors that should trigger retries."""
    pass


class LLMCriticalError(Exception):
    """Non-recoverable errors (auth failure, invalid prompt, etc.)."""
    pass


def _categorize(error: Exception) -> str:
    """Map an exception message onto a retry category."""
    error_msg = str(error).lower()

    if "rate" in error_msg and "limit" in error_msg:
        return "rate_limit"
    if "timeout" in error_msg or "timed out" in error_msg:
        return "timeout"
    if any(code in error_msg for code in ["500", "502", "503", "504"]):
        return "server_error"
    if "authentication" in error_msg or "api key" in error_msg or "401" in error_msg:
        return "auth"
    if "invalid" in error_msg and "request" in error_msg:
        return "invalid_request"
    return "unknown"


async def run_agent_with_retry(
    agent: Agent,
    prompt: str,
    deps: Any = None,
    max_retries: int | None = None
) -> T:
    """
    Executes an agent with exponential backoff retry logic.

    Args:
        agent: The PydanticAI agent to run
        prompt: The prompt to send to the agent
        deps: Optional dependencies for the agent
        max_retries: Override default retry count from settings

    Returns:
        The agent's output (typed based on agent's output_type)

    Raises:
        LLMCriticalError: For non-recoverable failures
        LLMError: After max retries exhausted
    """
    settings = get_settings()
    max_attempts = max_retries or settings.max_retries
    min_wait = settings.retry_min_wait_seconds
    max_wait = settings.retry_max_wait_seconds

    for attempt in range(1, max_attempts + 1):
        try:
            logger.debug(f"LLM attempt {attempt}/{max_attempts}")

            if deps is not None:
                result = await agent.run(prompt, deps=deps)
            else:
                result = await agent.run(prompt)

            return result.output

        except Exception as e:
            error_type = _categorize(e)

            if error_type == "auth":
                logger.error(f"🚨 Authentication failure: {e}")
                raise LLMCriticalError(f"Authentication failed: {e}") from e

            if error_type == "invalid_request":
                logger.error(f"🚨 Invalid request: {e}")
                raise LLMCriticalError(f"Invalid request: {e}") from e

            logger.warning(f"⚠️ LLM {error_type} error (attempt {attempt}/{max_attempts}): {e}")

            if attempt == max_attempts:
                logger.error(f"❌ Max retries ({max_attempts}) exhausted. Last error: {e}")
                raise LLMError(f"Failed after {max_attempts} attempts: {e}") from e

            # Exponential backoff with 20% jitter
            wait_time = min(min_wait * (2 ** (attempt - 1)), max_wait)
            wait_time = wait_time * (0.8 + 0.4 * random.random())

            logger.info(f"⏳ Retrying in {wait_time:.1f}s... (error: {error_type})")
            await asyncio.sleep(wait_time)

    raise LLMError("Unexpected retry loop exit")


async def run_agent_with_circuit_breaker(
    agent: Agent,
    prompt: str,
    fallback_factory: Callable[[], T],
    deps: Any = None,
    circuit: Optional[CircuitBreaker] = None,
) -> T:
    """
    Executes an agent with retries behind a circuit breaker.

    The circuit bounds the whole call (all attempts) by its call timeout.
    Any failure, timeout or open circuit yields ``fallback_factory()``.

    Args:
        agent: The PydanticAI agent to run
        prompt: The prompt to send to the agent
        fallback_factory: Function that returns a safe default response
        deps: Optional dependencies for the agent
        circuit: Circuit to use (defaults to the behavior AI circuit)

    Returns:
        Either the agent's output or the fallback response
    """
    circuit = circuit or get_behavior_ai_circuit()

    async def execute():
        return await run_agent_with_retry(agent, prompt, deps=deps)

    return await circuit.call_with_fallback(execute, fallback_factory)
