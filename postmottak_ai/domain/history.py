"""对话历史。

ChatHistory 由调用方持有，按引用传入每次 Agent 调用，只追加不修改。
同一个实例同一时间只应有一个写入方；并发调用请使用各自的实例。
"""

from typing import Iterable, Iterator, List, Optional

from .models import ChatMessage


class ChatHistory:
    def __init__(self, messages: Optional[Iterable[ChatMessage]] = None):
        self._messages: List[ChatMessage] = list(messages or [])

    def add_message(self, message: ChatMessage) -> None:
        self._messages.append(message)

    def add_user_message(self, content: str, **meta) -> ChatMessage:
        message = ChatMessage(role="user", content=content, meta=dict(meta))
        self._messages.append(message)
        return message

    def add_assistant_message(self, content: str, **meta) -> ChatMessage:
        message = ChatMessage(role="assistant", content=content, meta=dict(meta))
        self._messages.append(message)
        return message

    @property
    def latest(self) -> Optional[ChatMessage]:
        return self._messages[-1] if self._messages else None

    @property
    def messages(self) -> List[ChatMessage]:
        """返回消息列表的副本。"""
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __getitem__(self, index: int) -> ChatMessage:
        return self._messages[index]

    def __iter__(self) -> Iterator[ChatMessage]:
        return iter(self._messages)

    def __repr__(self) -> str:
        return f"ChatHistory(messages={len(self._messages)})"
