"""tokenledger: token counting and per-stage token usage bookkeeping for chat pipelines."""

from tokenledger.services.token_usage import (
    SEMANTIC_FUNCTIONS,
    FunctionResult,
    TokenUsageError,
    empty_token_usages,
    get_function_key,
    record_function_usage,
)
from tokenledger.services.tokens import (
    ChatRole,
    TokenCounter,
    count_history_tokens,
    count_message_tokens,
    count_text_tokens,
)

__all__ = [
    "SEMANTIC_FUNCTIONS",
    "ChatRole",
    "FunctionResult",
    "TokenCounter",
    "TokenUsageError",
    "count_history_tokens",
    "count_message_tokens",
    "count_text_tokens",
    "empty_token_usages",
    "get_function_key",
    "record_function_usage",
]
