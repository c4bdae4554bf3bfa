"""Token counting utilities.

Counts are produced with a tiktoken encoding (``cl100k_base`` by default). The
message and history estimates are a rough costing of the chat wire format, not
an exact serializer: each message is costed as ``"role:{role}"`` plus
``"content:{content}"``, and system messages carry one extra newline token.
"""

from __future__ import annotations

import enum
import logging
from functools import lru_cache
from typing import Any, Iterable, Mapping, Protocol

import tiktoken
from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    ChatMessage,
    FunctionMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)

_logger = logging.getLogger(__name__)


class ChatRole(str, enum.Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


# Streaming chunk classes subclass these, so isinstance covers them too.
_MESSAGE_CLASS_ROLES: tuple[tuple[type[BaseMessage], ChatRole], ...] = (
    (SystemMessage, ChatRole.SYSTEM),
    (HumanMessage, ChatRole.USER),
    (AIMessage, ChatRole.ASSISTANT),
    (ToolMessage, ChatRole.TOOL),
    (FunctionMessage, ChatRole.TOOL),
)


class Encoding(Protocol):
    def encode(self, text: str, **kwargs: Any) -> list[int]: ...


class TokenCounter:
    """Counts tokens for text fragments and chat messages with a fixed encoding."""

    def __init__(self, encoding: Encoding) -> None:
        self._encoding = encoding

    @classmethod
    def for_encoding(cls, encoding_name: str) -> "TokenCounter":
        return cls(tiktoken.get_encoding(encoding_name))

    def count(self, text: str) -> int:
        """Number of tokens the encoding produces for *text*."""
        # Special-token markers in user text are costed as ordinary text.
        return len(self._encoding.encode(text, disallowed_special=()))

    def count_message(self, role: ChatRole | str, content: str | None = None) -> int:
        """Rough token cost of one chat message, e.g. ``{"role": "assistant", "content": "Yes"}``."""
        role = normalize_role(role)
        label = role.value if isinstance(role, ChatRole) else str(role)
        token_count = self.count("\n") if role is ChatRole.SYSTEM else 0
        return token_count + self.count(f"role:{label}") + self.count(f"content:{content or ''}")

    def count_history(self, messages: Iterable[BaseMessage | Mapping[str, Any]]) -> int:
        """Rough token cost of a whole chat history."""
        total = 0
        for message in messages:
            role, content = message_role_and_content(message)
            total += self.count_message(role, content)
        return total


def normalize_role(role: ChatRole | str) -> ChatRole | str:
    """Known roles in any casing become a ``ChatRole``; other roles pass through unchanged."""
    if isinstance(role, ChatRole):
        return role
    try:
        return ChatRole(str(role).lower())
    except ValueError:
        return role


def chat_role(message: BaseMessage) -> ChatRole | str:
    """Map a LangChain message (or streamed message chunk) to its chat role.

    ``ChatMessage`` instances carry a free-form role, which is returned as-is
    when it is not one of the known roles.
    """
    if isinstance(message, ChatMessage):
        return normalize_role(message.role)
    for message_class, role in _MESSAGE_CLASS_ROLES:
        if isinstance(message, message_class):
            return role
    raise ValueError(f"Unsupported message type: {message.type!r}")


def message_text(content: Any) -> str | None:
    """Flatten LangChain message content (a string or a list of content blocks) to text."""
    if content is None or isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


def message_role_and_content(message: BaseMessage | Mapping[str, Any]) -> tuple[ChatRole | str, str | None]:
    if isinstance(message, BaseMessage):
        return chat_role(message), message_text(message.content)
    return normalize_role(message.get("role", "")), message_text(message.get("content"))


@lru_cache(maxsize=None)
def get_token_counter() -> TokenCounter:
    """Process-wide counter built from ``settings.TOKENIZER_ENCODING``.

    tiktoken encodings are safe to share across threads for ``encode``.
    """
    from tokenledger import config

    encoding_name = config.settings.TOKENIZER_ENCODING
    _logger.debug("Loading tokenizer encoding %s", encoding_name)
    return TokenCounter.for_encoding(encoding_name)


def count_text_tokens(text: str) -> int:
    """Count tokens in a text string."""
    return get_token_counter().count(text)


def count_message_tokens(role: ChatRole | str, content: str | None = None) -> int:
    """Rough token cost of one chat message."""
    return get_token_counter().count_message(role, content)


def count_history_tokens(messages: Iterable[BaseMessage | Mapping[str, Any]]) -> int:
    """Rough token cost of a chat history, summed in conversation order."""
    return get_token_counter().count_history(messages)
