"""Kernel 构建。

Kernel = 选定 Provider 的客户端 + 模型 + 注册的函数。流程：

    builder = create_kernel_builder(settings, log_level=logging.DEBUG)
    kernel = builder.build()

create_kernel_builder 会立即校验所选 Provider 的必需配置，
缺失时抛出 ConfigurationError（错误信息包含缺失的配置键），
并按 log_level 注册日志输出。
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Literal, Mapping, Optional, Union

from postmottak_ai.config.settings import Settings
from postmottak_ai.domain.exceptions import ConfigurationError, UnsupportedProviderError
from postmottak_ai.infrastructure.logging.logger import configure_logging, logger
from postmottak_ai.providers import create_provider
from postmottak_ai.providers.base import ProviderClient
from postmottak_ai.providers.registry import AiProvider, get_ai_provider, get_provider_config
from postmottak_ai.tools.definitions import ToolDef


@dataclass
class AzureOpenAIExecutionSettings:
    max_tokens: int
    function_choice: Literal["auto", "none", "required"] = "auto"
    store: bool = False
    response_format: Optional[type] = None

    def request_options(self) -> Dict[str, Any]:
        return {
            "max_tokens": self.max_tokens,
            "tool_choice": self.function_choice,
            "store": self.store,
            "response_format": self.response_format,
        }


@dataclass
class MistralExecutionSettings:
    max_tokens: int
    temperature: float = 0.7

    def request_options(self) -> Dict[str, Any]:
        return {"max_tokens": self.max_tokens, "temperature": self.temperature}


ExecutionSettings = Union[AzureOpenAIExecutionSettings, MistralExecutionSettings]


def _azure_execution_settings(max_tokens: int, response_format: Optional[type]) -> ExecutionSettings:
    return AzureOpenAIExecutionSettings(max_tokens=max_tokens, response_format=response_format)


def _mistral_execution_settings(max_tokens: int, response_format: Optional[type]) -> ExecutionSettings:
    # Mistral 不支持 response_format，JSON 格式交给系统指令约束
    temperature = get_provider_config(AiProvider.MISTRAL).default_temperature
    return MistralExecutionSettings(max_tokens=max_tokens, temperature=temperature)


EXECUTION_SETTINGS_FACTORIES: Mapping[AiProvider, Callable[[int, Optional[type]], ExecutionSettings]] = {
    AiProvider.AZURE_OPENAI: _azure_execution_settings,
    AiProvider.MISTRAL: _mistral_execution_settings,
}

MAX_COMPLETION_TOKENS_FIELDS: Mapping[AiProvider, str] = {
    AiProvider.AZURE_OPENAI: "azure_openai_max_completion_tokens",
    AiProvider.MISTRAL: "mistral_max_completion_tokens",
}


def get_max_completion_tokens(settings: Settings, provider: AiProvider) -> int:
    field_name = MAX_COMPLETION_TOKENS_FIELDS.get(provider)
    if field_name is None:
        raise UnsupportedProviderError(provider)
    return getattr(settings, field_name)


def create_execution_settings(
    provider: AiProvider,
    max_tokens: int,
    response_format: Optional[type] = None,
) -> ExecutionSettings:
    factory = EXECUTION_SETTINGS_FACTORIES.get(provider)
    if factory is None:
        raise UnsupportedProviderError(provider)
    return factory(max_tokens, response_format)


# ---- 必需配置校验 ----


def _require(settings: Settings, field_name: str, provider_label: str) -> str:
    value = getattr(settings, field_name, None)
    # 只有空白字符的值视为未配置
    if not value or not str(value).strip():
        raise ConfigurationError(field_name.upper(), provider_label)
    return str(value).strip()


def _azure_openai_model(settings: Settings) -> str:
    model = _require(settings, "azure_openai_model_name", "Azure OpenAI")
    _require(settings, "azure_openai_api_key", "Azure OpenAI")
    _require(settings, "azure_openai_endpoint", "Azure OpenAI")
    return model


def _mistral_model(settings: Settings) -> str:
    _require(settings, "mistral_api_key", "Mistral")
    model = (settings.mistral_model_name or "").strip()
    return model or get_provider_config(AiProvider.MISTRAL).default_model


PROVIDER_MODEL_RESOLVERS: Mapping[AiProvider, Callable[[Settings], str]] = {
    AiProvider.AZURE_OPENAI: _azure_openai_model,
    AiProvider.MISTRAL: _mistral_model,
}


@dataclass
class Kernel:
    """已配置好的 Provider 客户端及其模型。

    log_level 只作用于使用该 Kernel 的 Agent 的日志，
    不影响同一进程中其他 Kernel 的日志输出。
    """

    settings: Settings
    provider: AiProvider
    model: str
    client: ProviderClient
    functions: List[ToolDef] = field(default_factory=list)
    log_level: int = logging.INFO


class KernelBuilder:
    def __init__(
        self,
        settings: Settings,
        provider: AiProvider,
        model: str,
        client: Optional[ProviderClient] = None,
        log_level: int = logging.INFO,
    ):
        self.settings = settings
        self.provider = provider
        self.model = model
        self.log_level = log_level
        self._client = client
        self._functions: List[ToolDef] = []

    def add_function(self, tool: ToolDef) -> "KernelBuilder":
        """注册一个可供模型自动选择调用的函数描述。"""
        self._functions.append(tool)
        return self

    def with_client(self, client: ProviderClient) -> "KernelBuilder":
        """替换底层 Provider 客户端（例如测试替身或自定义传输）。"""
        self._client = client
        return self

    def build(self) -> Kernel:
        client = self._client or create_provider(self.settings, self.provider)
        return Kernel(
            settings=self.settings,
            provider=self.provider,
            model=self.model,
            client=client,
            functions=list(self._functions),
            log_level=self.log_level,
        )


def create_kernel_builder(
    settings: Settings,
    log_level: int = logging.INFO,
    client: Optional[ProviderClient] = None,
) -> KernelBuilder:
    """选择 Provider、校验必需配置并返回 KernelBuilder。"""

    configure_logging(settings, log_level)
    provider = get_ai_provider(settings)
    resolver = PROVIDER_MODEL_RESOLVERS.get(provider)
    if resolver is None:
        raise UnsupportedProviderError(provider)
    model = resolver(settings)
    if log_level <= logging.DEBUG:
        logger.debug(
            "Created kernel builder",
            extra={"extra": {"provider": provider.value, "model": model}},
        )
    return KernelBuilder(settings, provider, model, client, log_level=log_level)
