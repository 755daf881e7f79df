"""对话 Agent。

ChatCompletionAgent 持有已增强的系统指令、Kernel 与执行参数。
每次 invoke：

1. 在整个调用期间推入日志上下文 agent_name / response_type（异常时也会弹出）；
2. 以 [system 指令] + 调用方的历史（未提供则新建）+ prompt 发起一次请求；
3. 拿到完整回复后，才把 user 消息和回复依次追加到历史，并记录 token
   使用量（无法识别时记为 unknown）；
4. 返回同一个 ChatHistory 对象。

本层不做超时/重试：timeout 原样传给 Provider 传输层。cancel_event 在请求前、
流式增量之间和追加历史前检查，取消时历史保持调用前的状态。
日志按 Kernel.log_level 过滤，与其他 Kernel 的级别互不影响。
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Type

from postmottak_ai.agents.instructions import enhance_instructions
from postmottak_ai.agents.kernel import (
    ExecutionSettings,
    Kernel,
    KernelBuilder,
    create_execution_settings,
    get_max_completion_tokens,
)
from postmottak_ai.domain.exceptions import OperationCancelledError
from postmottak_ai.domain.history import ChatHistory
from postmottak_ai.domain.models import ChatMessage, ChatRequest
from postmottak_ai.infrastructure.logging.logger import log_context, logger


TokenCounts = Tuple[Optional[int], Optional[int]]

# usage.kind -> (输入 token, 输出 token)
USAGE_EXTRACTORS: Mapping[str, Callable[[Any], TokenCounts]] = {
    "azure_openai": lambda usage: (usage.input_token_count, usage.output_token_count),
    "mistral": lambda usage: (usage.prompt_tokens, usage.completion_tokens),
}


def get_token_usage(message: ChatMessage) -> TokenCounts:
    """从回复的 meta["usage"] 中取出 token 数；缺失或无法识别时返回 (None, None)。"""

    usage = (message.meta or {}).get("usage")
    extractor = USAGE_EXTRACTORS.get(getattr(usage, "kind", None))
    if extractor is None:
        return None, None
    return extractor(usage)


def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelledError(code="CANCELLED", message="Agent invocation cancelled", http_status=499)


class ChatCompletionAgent:
    def __init__(
        self,
        name: str,
        instructions: str,
        kernel: Kernel,
        execution_settings: ExecutionSettings,
    ):
        self.name = name
        self.instructions = instructions
        self.kernel = kernel
        self.execution_settings = execution_settings

    def invoke(
        self,
        prompt: str,
        response_type: str,
        history: Optional[ChatHistory] = None,
        *,
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> ChatHistory:
        """发送 prompt 并把 user 消息和模型回复追加到历史中。"""

        with log_context(agent_name=self.name, response_type=response_type):
            chat_history, user_message = self._start(prompt, response_type, history, cancel_event)
            result = self.kernel.client.chat(self._build_request(chat_history, user_message), timeout=timeout)
            # 取消时历史保持调用前的状态
            _check_cancelled(cancel_event)
            chat_history.add_message(user_message)
            for choice in result.choices:
                chat_history.add_message(choice.message)
                self._log_reply(choice.message, response_type)
            return chat_history

    def invoke_stream(
        self,
        prompt: str,
        response_type: str,
        history: Optional[ChatHistory] = None,
        *,
        on_delta: Optional[Callable[[str], None]] = None,
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> ChatHistory:
        """流式版本：每个文本增量回调 on_delta，结束后追加 user 消息和完整回复。"""

        with log_context(agent_name=self.name, response_type=response_type):
            chat_history, user_message = self._start(prompt, response_type, history, cancel_event)
            pieces: List[str] = []
            meta: Dict[str, Any] = {"usage": None, "finish_reason": None}
            request = self._build_request(chat_history, user_message)
            for chunk in self.kernel.client.chat_stream(request, timeout=timeout):
                _check_cancelled(cancel_event)
                if chunk.usage is not None:
                    meta["usage"] = chunk.usage
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                if choice.finish_reason:
                    meta["finish_reason"] = choice.finish_reason
                delta_text = choice.delta.content or ""
                if delta_text:
                    pieces.append(delta_text)
                    if on_delta is not None:
                        on_delta(delta_text)
            _check_cancelled(cancel_event)
            chat_history.add_message(user_message)
            reply = chat_history.add_assistant_message("".join(pieces), **meta)
            self._log_reply(reply, response_type)
            return chat_history

    def _log(self, level: int, message: str, *args: Any, **fields: Any) -> None:
        if level < self.kernel.log_level:
            return
        logger.log(level, message, *args, extra={"extra": fields})

    def _start(
        self,
        prompt: str,
        response_type: str,
        history: Optional[ChatHistory],
        cancel_event: Optional[threading.Event],
    ) -> Tuple[ChatHistory, ChatMessage]:
        self._log(logging.INFO, "Asking %s for response type %s", self.name, response_type)
        self._log(logging.DEBUG, "Prompt", prompt=prompt)
        _check_cancelled(cancel_event)
        chat_history = history if history is not None else ChatHistory()
        self._log(
            logging.DEBUG,
            "Invoking agent %s",
            self.name,
            provider=self.kernel.provider.value,
            model=self.kernel.model,
        )
        return chat_history, ChatMessage(role="user", content=prompt)

    def _build_request(self, history: ChatHistory, user_message: ChatMessage) -> ChatRequest:
        messages = [ChatMessage(role="system", content=self.instructions)]
        messages.extend(history.messages)
        messages.append(user_message)
        return ChatRequest(
            provider=self.kernel.provider.value,
            model=self.kernel.model,
            messages=messages,
            tools=self.kernel.functions or None,
            **self.execution_settings.request_options(),
        )

    def _log_reply(self, reply: ChatMessage, response_type: str) -> None:
        input_tokens, output_tokens = get_token_usage(reply)
        self._log(
            logging.INFO,
            "Got %s response from %s. InputTokenCount: %s. OutputTokenCount: %s",
            response_type,
            self.name,
            "unknown" if input_tokens is None else input_tokens,
            "unknown" if output_tokens is None else output_tokens,
            input_token_count=input_tokens,
            output_token_count=output_tokens,
        )
        self._log(logging.DEBUG, "Result", result=reply.content)


def create_agent(
    builder: KernelBuilder,
    name: str,
    instructions: str,
    response_format: Optional[Type[Any]] = None,
) -> ChatCompletionAgent:
    """构建 Kernel 并创建 Agent；response_format 为期望的结果类型。"""

    kernel = builder.build()
    max_tokens = get_max_completion_tokens(builder.settings, kernel.provider)
    return ChatCompletionAgent(
        name=name,
        instructions=enhance_instructions(instructions, response_format, kernel.provider),
        kernel=kernel,
        execution_settings=create_execution_settings(kernel.provider, max_tokens, response_format),
    )
