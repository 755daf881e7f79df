import logging

import pytest

from postmottak_ai.config.settings import Settings
from postmottak_ai.infrastructure.logging.logger import logger


PROVIDER_ENV_KEYS = [
    "AI_PROVIDER",
    "AZURE_OPENAI_MODEL_NAME",
    "AZURE_OPENAI_API_KEY",
    "AZURE_OPENAI_ENDPOINT",
    "AZURE_OPENAI_API_VERSION",
    "AZURE_OPENAI_MAX_COMPLETION_TOKENS",
    "MISTRAL_MODEL_NAME",
    "MISTRAL_API_KEY",
    "MISTRAL_BASE_URL",
    "MISTRAL_MAX_COMPLETION_TOKENS",
    "HTTP_TIMEOUT",
    "LOG_DIR",
    "LOG_REDACT_CONTENT",
    "POSTMOTTAK_AI_CONFIG_FILE",
]


@pytest.fixture(autouse=True)
def clean_provider_env(monkeypatch, tmp_path):
    for key in PROVIDER_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    # 避免读取仓库根目录下的 .env / config.yaml
    monkeypatch.chdir(tmp_path)


@pytest.fixture(autouse=True)
def reset_log_sinks():
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.INFO)


@pytest.fixture
def azure_settings():
    return Settings.from_mapping(
        {
            "AI_PROVIDER": "AzureOpenAI",
            "AZURE_OPENAI_MODEL_NAME": "gpt-4o-postmottak",
            "AZURE_OPENAI_API_KEY": "azure-key",
            "AZURE_OPENAI_ENDPOINT": "https://postmottak.openai.azure.com/",
        }
    )


@pytest.fixture
def mistral_settings():
    return Settings.from_mapping({"AI_PROVIDER": "Mistral", "MISTRAL_API_KEY": "mistral-key"})
