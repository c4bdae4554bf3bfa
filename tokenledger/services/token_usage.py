"""Per-stage token usage accounting for chat response generation.

Each semantic function the chat pipeline runs (intent extraction, memory
extraction, the final completion, ...) is a *stage*. The tokens a stage spends
are recorded into the response's arguments under ``"{usageField}TokenUsage"``.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
from collections.abc import Mapping, MutableMapping
from types import MappingProxyType
from typing import Any

from langchain_core.messages import AIMessage
from requests.structures import CaseInsensitiveDict

from tokenledger.logging_config import bind_stage

_logger = logging.getLogger(__name__)

# Semantic dependencies of the chat pipeline. Add new stages here.
SEMANTIC_FUNCTIONS: Mapping[str, str] = MappingProxyType({
    "SystemAudienceExtraction": "audienceExtraction",
    "SystemIntentExtraction": "userIntentExtraction",
    "SystemMetaPrompt": "metaPromptTemplate",
    "SystemCompletion": "responseCompletion",
    "SystemCognitive_WorkingMemory": "workingMemoryExtraction",
    "SystemCognitive_LongTermMemory": "longTermMemoryExtraction",
})

TOKEN_USAGE_SUFFIX = "TokenUsage"

USAGE_METADATA_KEY = "Usage"
TOTAL_TOKENS_FIELDS = ("TotalTokens", "total_tokens")


class TokenUsageError(ValueError):
    """Usage metadata is present but not shaped like a token usage report."""


class UsageStatus(enum.Enum):
    FOUND = "found"
    NO_METADATA = "no_metadata"
    NO_USAGE = "no_usage"
    FIELD_MISSING = "field_missing"


@dataclasses.dataclass(frozen=True)
class UsageLookup:
    status: UsageStatus
    total_tokens: int = 0


@dataclasses.dataclass
class FunctionResult:
    """Result of a semantic function call: its value plus provider metadata."""

    value: Any = None
    metadata: Mapping[str, Any] | None = None

    @classmethod
    def from_message(cls, message: AIMessage) -> "FunctionResult":
        """Wrap a LangChain chat model response.

        ``usage_metadata`` becomes the ``Usage`` entry; ``response_metadata``
        (model name, finish reason, ...) is carried alongside it.
        """
        metadata: dict[str, Any] = dict(getattr(message, "response_metadata", None) or {})
        usage = getattr(message, "usage_metadata", None)
        if usage:
            input_t = usage.get("input_tokens", 0) or 0
            output_t = usage.get("output_tokens", 0) or 0
            metadata[USAGE_METADATA_KEY] = {
                "PromptTokens": input_t,
                "CompletionTokens": output_t,
                "TotalTokens": usage.get("total_tokens") or input_t + output_t,
            }
        return cls(value=message.content, metadata=metadata)


def usage_key(usage_field: str) -> str:
    return f"{usage_field}{TOKEN_USAGE_SUFFIX}"


def empty_token_usages() -> CaseInsensitiveDict:
    """Zero usage for every known stage.

    Use for responses that are hardcoded or have no semantic (token) dependencies.
    """
    return CaseInsensitiveDict({usage_key(v): 0 for v in SEMANTIC_FUNCTIONS.values()})


def get_function_key(function_name: str | None, logger: logging.Logger | None = None) -> str | None:
    """Key under which *function_name*'s token usage is recorded, or None if the stage is unknown.

    Lookup is exact-match on the stage name.
    """
    log = logger or _logger
    usage_field = SEMANTIC_FUNCTIONS.get(function_name) if function_name else None
    if usage_field is None:
        log.error(
            "Unknown token dependency %s. Please define function as a SEMANTIC_FUNCTIONS entry in %s",
            function_name,
            __name__,
        )
        return None
    return usage_key(usage_field)


_MISSING = object()


def _total_tokens_field(usage: Any) -> Any:
    """Value of the first ``TOTAL_TOKENS_FIELDS`` name *usage* exposes, or ``_MISSING``.

    Mappings are read by key; any other structured object (pydantic model,
    dataclass, namedtuple, object with properties or slots) by attribute.
    """
    if isinstance(usage, Mapping):
        return next((usage[name] for name in TOTAL_TOKENS_FIELDS if name in usage), _MISSING)
    if isinstance(usage, (str, bytes, int, float, complex)) or (
        isinstance(usage, (list, tuple)) and not hasattr(usage, "_fields")
    ):
        raise TokenUsageError(f"Usage entry of type {type(usage).__name__} is not a structured object")
    for name in TOTAL_TOKENS_FIELDS:
        value = getattr(usage, name, _MISSING)
        if value is not _MISSING:
            return value
    return _MISSING


def lookup_total_tokens(metadata: Mapping[str, Any] | None) -> UsageLookup:
    """Read the total token count out of completion result metadata.

    Missing data is reported through ``UsageLookup.status``; a present but
    malformed report raises ``TokenUsageError``.
    """
    if metadata is None:
        return UsageLookup(UsageStatus.NO_METADATA)
    if not isinstance(metadata, Mapping):
        raise TokenUsageError(f"Result metadata must be a mapping, got {type(metadata).__name__}")

    usage = metadata.get(USAGE_METADATA_KEY)
    if usage is None or (isinstance(usage, Mapping) and not usage):
        return UsageLookup(UsageStatus.NO_USAGE)

    total = _total_tokens_field(usage)
    if total is _MISSING:
        return UsageLookup(UsageStatus.FIELD_MISSING)

    if isinstance(total, bool) or not isinstance(total, int) or total < 0:
        raise TokenUsageError(f"TotalTokens must be a non-negative integer, got {total!r}")
    return UsageLookup(UsageStatus.FOUND, total)


def record_function_usage(
    result: Any,
    arguments: MutableMapping[str, Any],
    logger: logging.Logger | None = None,
    function_name: str | None = None,
) -> None:
    """Record the total token usage of a chat completion *result* into *arguments*.

    The count is written as a decimal string under the stage's usage key,
    replacing any earlier value. Missing usage data is logged and skipped;
    any other failure is logged and re-raised.
    """
    log = logger or _logger
    with bind_stage(function_name):
        try:
            function_key = get_function_key(function_name, log)
            if function_key is None:
                return

            lookup = lookup_total_tokens(getattr(result, "metadata", None))
            if lookup.status is UsageStatus.NO_METADATA:
                log.error("No metadata provided to capture usage details.")
                return
            if lookup.status is UsageStatus.NO_USAGE:
                log.error("Unable to determine token usage for %s", function_key)
                return
            if lookup.status is UsageStatus.FIELD_MISSING:
                log.error("Usage details not found in model result.")

            arguments[function_key] = str(lookup.total_tokens)
        except Exception:
            log.exception("Unable to determine token usage for %s", function_name)
            raise
