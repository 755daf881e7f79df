"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- Provider 选择与静态配置 (registry)。
- 各厂商的具体实现 (azure_openai_client、mistral_client)。
"""

from typing import Callable, Mapping, Optional

from postmottak_ai.config.settings import Settings
from postmottak_ai.domain.exceptions import UnsupportedProviderError
from postmottak_ai.providers.azure_openai_client import AzureOpenAIClient
from postmottak_ai.providers.base import ProviderClient
from postmottak_ai.providers.mistral_client import MistralClient
from postmottak_ai.providers.registry import AiProvider, get_ai_provider, parse_ai_provider


PROVIDER_CLIENTS: Mapping[AiProvider, Callable[[Settings], ProviderClient]] = {
    AiProvider.AZURE_OPENAI: AzureOpenAIClient,
    AiProvider.MISTRAL: MistralClient,
}


def create_provider(settings: Settings, provider: Optional[AiProvider] = None) -> ProviderClient:
    """根据 Provider 创建客户端实例，默认取配置中的 AI_PROVIDER。"""

    selected = provider if provider is not None else get_ai_provider(settings)
    factory = PROVIDER_CLIENTS.get(selected)
    if factory is None:
        raise UnsupportedProviderError(selected)
    return factory(settings)


__all__ = [
    "AiProvider",
    "ProviderClient",
    "AzureOpenAIClient",
    "MistralClient",
    "create_provider",
    "get_ai_provider",
    "parse_ai_provider",
]
