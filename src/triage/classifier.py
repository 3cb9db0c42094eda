"""Ask the LLM for an incident's priority and return its raw reply."""

import logging

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage

from src.observability.metrics import LLM_CALLS_TOTAL, LLM_TOKEN_USAGE
from src.triage.errors import InferenceError

logger = logging.getLogger(__name__)

# Incidents are filed in Czech, so the prompt is too.
_SUBJECT_TEMPLATE = "Popis nahlášeného incidentu je: {subject};"
_DESCRIPTION_TEMPLATE = " Podrobnosti: {description};"
_QUESTION = (
    " Jaká je priorita incidentu? Vyber jednu z možností: 1=vysoká, 2=střední, 3=nízká."
    ' Výsledek vrať ve formátu JSON ve tvaru: {"priorita":"1"}'
)


def build_prompt(subject: str, description: str | None = None) -> str:
    """Build the single-turn classification prompt.

    The description is only included when it is non-empty. The closing
    instruction pins the answer to a one-field JSON object, which is what
    the extractor looks for.
    """
    prompt = _SUBJECT_TEMPLATE.format(subject=subject)
    if description:
        prompt += _DESCRIPTION_TEMPLATE.format(description=description)
    return prompt + _QUESTION


def _first_text(message: BaseMessage) -> str:
    """Return the first text segment of a chat reply."""
    content = message.content
    if isinstance(content, str):
        return content
    for block in content:
        if isinstance(block, str):
            return block
        if isinstance(block, dict) and block.get("type") == "text":
            return str(block.get("text", ""))
    msg = "Model reply contains no text segment"
    raise InferenceError(msg)


def _record_token_usage(message: BaseMessage) -> None:
    usage = getattr(message, "usage_metadata", None)
    if not usage:
        return
    LLM_TOKEN_USAGE.labels(type="prompt").inc(usage.get("input_tokens", 0))
    LLM_TOKEN_USAGE.labels(type="completion").inc(usage.get("output_tokens", 0))


class IncidentClassifier:
    """Wraps one chat model; one call per incident, no retries."""

    def __init__(self, llm: BaseChatModel) -> None:
        self._llm = llm

    def classify(self, subject: str, description: str | None = None) -> str:
        """Return the model's raw reply for one incident.

        Raises:
            InferenceError: The call failed or the reply had no text.
        """
        prompt = build_prompt(subject, description)
        try:
            response = self._llm.invoke([HumanMessage(content=prompt)])
            text = _first_text(response)
        except InferenceError:
            LLM_CALLS_TOTAL.labels(status="error").inc()
            raise
        except Exception as exc:
            LLM_CALLS_TOTAL.labels(status="error").inc()
            msg = f"LLM call failed: {exc}"
            raise InferenceError(msg) from exc

        LLM_CALLS_TOTAL.labels(status="success").inc()
        _record_token_usage(response)
        logger.debug("LLM response: %s", text)
        return text
