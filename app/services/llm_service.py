# app/services/llm_service.py
import logging
from functools import lru_cache
from typing import Optional

from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.runnables import Runnable
from langchain_groq import ChatGroq

from app.core.config import settings

logger = logging.getLogger(__name__)

# System prompt requesting a single JSON object. Core Web Vitals come from
# PageSpeed Insights, never from the model.
SYSTEM_PROMPT = """
You are an expert SEO and web performance consultant. Analyze the webpage data and return ONLY a valid JSON object (no markdown, no code blocks) with this exact structure:
{{
  "scores": {{"seo": 0-100, "performance": 0-100, "accessibility": 0-100, "bestPractices": 0-100}},
  "findings": [{{"severity": "positive"|"warning"|"critical", "category": "seo"|"performance"|"accessibility"|"best-practices", "title": "string", "description": "string"}}],
  "recommendations": [{{"priority": "high"|"medium"|"low", "title": "string", "description": "string", "impact": "string"}}],
  "summary": "2-3 sentence overview"
}}
Base scores ONLY on the provided metrics. Scores must be integers. Be specific and actionable. Do NOT estimate Core Web Vitals - they will be measured separately.
"""

# Create a prompt template with the system instruction and the page report
prompt = ChatPromptTemplate.from_messages(
    [
        ("system", SYSTEM_PROMPT),
        ("human", "{query}"),
    ]
)


class LLMUnavailableError(Exception):
    """No completion backend is configured."""


@lru_cache(maxsize=4)
def get_chain(api_key: str, model_name: str, max_tokens: int) -> Runnable:
    """Builds (once per configuration) the prompt | llm | parser chain."""
    llm = ChatGroq(
        model_name=model_name,
        groq_api_key=api_key,
        max_tokens=max_tokens,
    )
    return prompt | llm | StrOutputParser()


async def complete(query: str, api_key: Optional[str] = None) -> str:
    """
    Gets a single, non-streamed completion for the analysis prompt.

    Args:
        query: The user prompt describing the page.
        api_key: Groq credential; defaults to the configured one.

    Returns:
        The raw text produced by the model.

    Raises:
        LLMUnavailableError: If no Groq API key is configured.
    """
    api_key = api_key or settings.GROQ_API_KEY
    if not api_key:
        raise LLMUnavailableError("GROQ_API_KEY is not configured")

    chain = get_chain(api_key, settings.LLM_MODEL_NAME, settings.LLM_MAX_TOKENS)
    response = await chain.ainvoke({"query": query})
    logger.debug("LLM returned %d characters", len(response))
    return response
