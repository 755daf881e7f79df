import logging
import threading

import pytest

from postmottak_ai.agents.answers import get_latest_answer
from postmottak_ai.agents.chat_agent import create_agent, get_token_usage
from postmottak_ai.agents.kernel import create_kernel_builder
from postmottak_ai.domain.exceptions import ApiError, OperationCancelledError
from postmottak_ai.domain.history import ChatHistory
from postmottak_ai.domain.models import (
    AzureOpenAIUsage,
    ChatChoice,
    ChatMessage,
    ChatResult,
    ChatStreamChoice,
    ChatStreamChunk,
    MistralUsage,
)
from postmottak_ai.domain.results import PengetransportenChatResult
from postmottak_ai.infrastructure.logging.logger import current_log_context


class FakeClient:
    """记录请求并返回固定回复的 Provider 替身。"""

    name = "Fake"

    def __init__(self, content='{"description": "Faktura", "isInvoiceRelated": true}', usage=None, error=None):
        self.content = content
        self.usage = usage
        self.error = error
        self.requests = []
        self.timeouts = []
        self.contexts = []

    def chat(self, req, timeout=None):
        self.requests.append(req)
        self.timeouts.append(timeout)
        self.contexts.append(current_log_context())
        if self.error is not None:
            raise self.error
        msg = ChatMessage(role="assistant", content=self.content, meta={"usage": self.usage})
        return ChatResult(provider=self.name, model=req.model, choices=[ChatChoice(index=0, message=msg)], usage=self.usage)

    def chat_stream(self, req, timeout=None):
        self.requests.append(req)
        self.contexts.append(current_log_context())
        half = len(self.content) // 2
        for piece in (self.content[:half], self.content[half:]):
            yield ChatStreamChunk(
                provider=self.name,
                model=req.model,
                choices=[ChatStreamChoice(index=0, delta=ChatMessage(role="assistant", content=piece))],
            )
        yield ChatStreamChunk(
            provider=self.name,
            model=req.model,
            choices=[ChatStreamChoice(index=0, delta=ChatMessage(role="assistant", content=""), finish_reason="stop")],
            usage=self.usage,
        )


def _agent(settings, client):
    builder = create_kernel_builder(settings, client=client)
    return create_agent(builder, "PengetransportenAgent", "Klassifiser e-posten.", PengetransportenChatResult)


def test_invoke_appends_to_callers_history(azure_settings):
    client = FakeClient(usage=AzureOpenAIUsage(input_token_count=100, output_token_count=20, total_token_count=120))
    agent = _agent(azure_settings, client)
    history = ChatHistory()

    returned = agent.invoke("Faktura 1234 forfaller", "PengetransportenChatResult", history, timeout=30.0)

    assert returned is history
    assert [m.role for m in history] == ["user", "assistant"]
    assert history[0].content == "Faktura 1234 forfaller"
    assert client.timeouts == [30.0]

    req = client.requests[0]
    assert req.provider == "AzureOpenAI"
    assert req.model == "gpt-4o-postmottak"
    assert req.messages[0].role == "system"
    assert req.messages[0].content == agent.instructions
    assert req.messages[1].content == "Faktura 1234 forfaller"
    assert req.max_tokens == 10000
    assert req.response_format is PengetransportenChatResult
    assert req.store is False


def test_invoke_creates_history_when_absent(azure_settings):
    history = _agent(azure_settings, FakeClient()).invoke("hei", "PengetransportenChatResult")
    assert len(history) == 2


def test_invoke_reuses_empty_history_instance(azure_settings):
    history = ChatHistory()
    assert _agent(azure_settings, FakeClient()).invoke("hei", "X", history) is history


def test_invoke_logs_token_usage(azure_settings, caplog):
    client = FakeClient(usage=AzureOpenAIUsage(input_token_count=100, output_token_count=20, total_token_count=120))
    with caplog.at_level(logging.INFO, logger="postmottak_ai"):
        _agent(azure_settings, client).invoke("hei", "PengetransportenChatResult")

    messages = [r.getMessage() for r in caplog.records]
    assert (
        "Got PengetransportenChatResult response from PengetransportenAgent. "
        "InputTokenCount: 100. OutputTokenCount: 20"
    ) in messages
    record = next(r for r in caplog.records if r.getMessage().startswith("Got "))
    assert record.extra["agent_name"] == "PengetransportenAgent"
    assert record.extra["response_type"] == "PengetransportenChatResult"
    assert record.extra["input_token_count"] == 100


def test_invoke_unknown_usage_is_logged_not_raised(azure_settings, caplog):
    with caplog.at_level(logging.INFO, logger="postmottak_ai"):
        _agent(azure_settings, FakeClient(usage=None)).invoke("hei", "PengetransportenChatResult")
    assert any("InputTokenCount: unknown. OutputTokenCount: unknown" in r.getMessage() for r in caplog.records)


def test_log_context_scoped_to_invocation(azure_settings):
    client = FakeClient()
    _agent(azure_settings, client).invoke("hei", "PengetransportenChatResult")
    assert client.contexts[0] == {
        "agent_name": "PengetransportenAgent",
        "response_type": "PengetransportenChatResult",
    }
    assert current_log_context() == {}


def test_log_context_popped_on_error(azure_settings):
    client = FakeClient(error=ApiError(code="API_ERROR", message="boom", http_status=500))
    with pytest.raises(ApiError):
        _agent(azure_settings, client).invoke("hei", "PengetransportenChatResult")
    assert current_log_context() == {}


def test_cancelled_before_request(azure_settings):
    client = FakeClient()
    cancel = threading.Event()
    cancel.set()
    history = ChatHistory()
    with pytest.raises(OperationCancelledError):
        _agent(azure_settings, client).invoke("hei", "X", history, cancel_event=cancel)
    assert client.requests == []
    assert len(history) == 0
    assert current_log_context() == {}


def test_invoke_stream_collects_reply(mistral_settings):
    client = FakeClient(usage=MistralUsage(prompt_tokens=7, completion_tokens=3, total_tokens=10))
    agent = _agent(mistral_settings, client)
    deltas = []

    history = agent.invoke_stream("hei", "PengetransportenChatResult", on_delta=deltas.append)

    assert "".join(deltas) == client.content
    reply = history.latest
    assert reply.role == "assistant"
    assert reply.content == client.content
    assert reply.meta["finish_reason"] == "stop"
    assert get_token_usage(reply) == (7, 3)
    assert client.requests[0].temperature == 0.7
    assert client.requests[0].response_format is None


def test_get_token_usage_variants():
    azure = ChatMessage(
        role="assistant",
        content="",
        meta={"usage": AzureOpenAIUsage(input_token_count=1, output_token_count=2, total_token_count=3)},
    )
    mistral = ChatMessage(
        role="assistant",
        content="",
        meta={"usage": MistralUsage(prompt_tokens=4, completion_tokens=5, total_tokens=9)},
    )
    assert get_token_usage(azure) == (1, 2)
    assert get_token_usage(mistral) == (4, 5)
    assert get_token_usage(ChatMessage(role="assistant", content="")) == (None, None)
    assert get_token_usage(ChatMessage(role="assistant", content="", meta={"usage": {"tokens": 1}})) == (None, None)


class CancellingClient(FakeClient):
    """在请求进行中触发取消的 Provider 替身。"""

    def __init__(self, cancel_event, **kwargs):
        super().__init__(**kwargs)
        self.cancel_event = cancel_event

    def chat(self, req, timeout=None):
        self.cancel_event.set()
        return super().chat(req, timeout)

    def chat_stream(self, req, timeout=None):
        for chunk in super().chat_stream(req, timeout):
            self.cancel_event.set()
            yield chunk


def _history_with_one_exchange():
    history = ChatHistory()
    history.add_user_message("Emne: Faktura 1234")
    history.add_assistant_message('{"description": "Faktura", "isInvoiceRelated": true}')
    return history


def test_cancel_during_request_leaves_history_untouched(azure_settings):
    cancel = threading.Event()
    client = CancellingClient(cancel)
    history = _history_with_one_exchange()
    prompt = 'Emne: {"description": "Fra e-posten", "isInvoiceRelated": false}'

    with pytest.raises(OperationCancelledError):
        _agent(azure_settings, client).invoke(prompt, "PengetransportenChatResult", history, cancel_event=cancel)

    assert len(client.requests) == 1
    assert client.requests[0].messages[-1].content == prompt
    assert [m.role for m in history] == ["user", "assistant"]
    answer = get_latest_answer(history, PengetransportenChatResult)
    assert answer == PengetransportenChatResult(description="Faktura", is_invoice_related=True)
    assert current_log_context() == {}


def test_cancel_during_stream_leaves_history_untouched(azure_settings):
    cancel = threading.Event()
    history = _history_with_one_exchange()
    deltas = []

    with pytest.raises(OperationCancelledError):
        _agent(azure_settings, CancellingClient(cancel)).invoke_stream(
            "Emne: Purring", "PengetransportenChatResult", history, on_delta=deltas.append, cancel_event=cancel
        )

    assert deltas == []
    assert [m.role for m in history] == ["user", "assistant"]


def test_log_level_is_scoped_per_kernel(azure_settings, caplog):
    usage = AzureOpenAIUsage(input_token_count=100, output_token_count=20, total_token_count=120)
    verbose = create_agent(
        create_kernel_builder(azure_settings, log_level=logging.INFO, client=FakeClient(usage=usage)),
        "Rf1350Agent",
        "Hent ut feltene.",
    )
    quiet = create_agent(
        create_kernel_builder(azure_settings, log_level=logging.WARNING, client=FakeClient(usage=usage)),
        "PengetransportenAgent",
        "Klassifiser e-posten.",
    )

    with caplog.at_level(logging.INFO, logger="postmottak_ai"):
        quiet.invoke("hei", "PengetransportenChatResult")
        verbose.invoke("hei", "Rf1350ChatResult")

    token_lines = [r.getMessage() for r in caplog.records if r.getMessage().startswith("Got ")]
    assert token_lines == [
        "Got Rf1350ChatResult response from Rf1350Agent. InputTokenCount: 100. OutputTokenCount: 20"
    ]
