"""
Text generation with a deterministic fallback.

The scheduling core may ask an external generator (an LLM client) to phrase
a confirmation. The generator is optional and never trusted to be up: every
call is bounded by a timeout and any failure returns the fallback text, so
booking outcomes never depend on it.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from scheduling.ports import TextGenerator

logger = logging.getLogger(__name__)


async def generate_with_fallback(
    generator: Optional["TextGenerator"],
    prompt: str,
    fallback: str,
    timeout: float = 5.0,
) -> str:
    """
    Generate text, or return `fallback` on timeout, error or empty output.

    Args:
        generator: External text generator (None disables generation)
        prompt: Prompt passed to the generator
        fallback: Template text used whenever generation is not usable
        timeout: Seconds to wait for the generator

    Returns:
        Generated text, or the fallback
    """
    if generator is None:
        return fallback

    try:
        text = await asyncio.wait_for(generator.generate(prompt), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Text generation timed out after {timeout}s | using fallback")
        return fallback
    except Exception as e:
        logger.error(f"Text generation failed | error={e} | using fallback", exc_info=True)
        return fallback

    if not text or not text.strip():
        logger.warning("Text generation returned empty output | using fallback")
        return fallback
    return text.strip()
