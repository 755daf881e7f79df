import logging

import pytest

from postmottak_ai.agents.chat_agent import create_agent
from postmottak_ai.agents.kernel import (
    AzureOpenAIExecutionSettings,
    MistralExecutionSettings,
    create_execution_settings,
    create_kernel_builder,
    get_max_completion_tokens,
)
from postmottak_ai.config.settings import Settings
from postmottak_ai.domain.exceptions import ConfigurationError, UnsupportedProviderError
from postmottak_ai.domain.results import PengetransportenChatResult
from postmottak_ai.infrastructure.logging.logger import CONSOLE_SINK, FILE_SINK, logger
from postmottak_ai.providers.azure_openai_client import AzureOpenAIClient
from postmottak_ai.providers.mistral_client import MistralClient
from postmottak_ai.providers.registry import AiProvider
from postmottak_ai.tools.definitions import ToolDef


@pytest.mark.parametrize(
    "missing",
    ["AZURE_OPENAI_MODEL_NAME", "AZURE_OPENAI_API_KEY", "AZURE_OPENAI_ENDPOINT"],
)
def test_azure_missing_setting_names_key(missing):
    values = {
        "AZURE_OPENAI_MODEL_NAME": "gpt-4o-postmottak",
        "AZURE_OPENAI_API_KEY": "azure-key",
        "AZURE_OPENAI_ENDPOINT": "https://postmottak.openai.azure.com/",
    }
    values[missing] = "   "
    with pytest.raises(ConfigurationError) as exc_info:
        create_kernel_builder(Settings.from_mapping(values))
    assert exc_info.value.key == missing
    assert missing in str(exc_info.value)


def test_mistral_missing_key():
    with pytest.raises(ConfigurationError) as exc_info:
        create_kernel_builder(Settings.from_mapping({"AI_PROVIDER": "Mistral"}))
    assert exc_info.value.key == "MISTRAL_API_KEY"


def test_mistral_default_model(mistral_settings):
    builder = create_kernel_builder(mistral_settings)
    assert builder.provider is AiProvider.MISTRAL
    assert builder.model == "mistral-large-latest"
    kernel = builder.build()
    assert isinstance(kernel.client, MistralClient)


def test_azure_builder_uses_deployment(azure_settings):
    builder = create_kernel_builder(azure_settings)
    assert builder.provider is AiProvider.AZURE_OPENAI
    assert builder.model == "gpt-4o-postmottak"
    assert isinstance(builder.build().client, AzureOpenAIClient)


def test_builder_functions_and_client_override(azure_settings):
    tool = ToolDef(name="lookup_org", description="Slå opp organisasjon", params={})
    sentinel = object()
    kernel = create_kernel_builder(azure_settings).add_function(tool).with_client(sentinel).build()
    assert kernel.client is sentinel
    assert kernel.functions == [tool]


def test_builder_registers_sinks(tmp_path):
    settings = Settings.from_mapping(
        {
            "AI_PROVIDER": "Mistral",
            "MISTRAL_API_KEY": "k",
            "LOG_DIR": str(tmp_path / "logs"),
        }
    )
    create_kernel_builder(settings, log_level=logging.DEBUG)
    create_kernel_builder(settings, log_level=logging.DEBUG)

    names = [h.get_name() for h in logger.handlers]
    assert names.count(CONSOLE_SINK) == 1
    assert names.count(FILE_SINK) == 1
    assert logger.isEnabledFor(logging.DEBUG)
    assert (tmp_path / "logs" / "postmottak_ai.log").exists()


def test_execution_settings_per_provider():
    azure = create_execution_settings(AiProvider.AZURE_OPENAI, 2048, PengetransportenChatResult)
    assert isinstance(azure, AzureOpenAIExecutionSettings)
    assert azure.request_options() == {
        "max_tokens": 2048,
        "tool_choice": "auto",
        "store": False,
        "response_format": PengetransportenChatResult,
    }

    mistral = create_execution_settings(AiProvider.MISTRAL, 2048, PengetransportenChatResult)
    assert isinstance(mistral, MistralExecutionSettings)
    assert mistral.request_options() == {"max_tokens": 2048, "temperature": 0.7}

    with pytest.raises(UnsupportedProviderError):
        create_execution_settings("Gemini", 2048)


def test_max_completion_tokens_from_settings():
    settings = Settings.from_mapping(
        {"AZURE_OPENAI_MAX_COMPLETION_TOKENS": "4096", "MISTRAL_MAX_COMPLETION_TOKENS": "512"}
    )
    assert get_max_completion_tokens(settings, AiProvider.AZURE_OPENAI) == 4096
    assert get_max_completion_tokens(settings, AiProvider.MISTRAL) == 512


def test_create_agent_wires_instructions_and_settings(azure_settings):
    agent = create_agent(
        create_kernel_builder(azure_settings),
        "PengetransportenAgent",
        "Klassifiser e-posten.",
        PengetransportenChatResult,
    )
    assert agent.name == "PengetransportenAgent"
    assert agent.instructions.startswith("Klassifiser e-posten.\nIMPORTANT - JSON RESPONSE RULES")
    assert agent.execution_settings.max_tokens == 10000
    assert agent.execution_settings.response_format is PengetransportenChatResult


def test_create_agent_without_format_keeps_instructions(mistral_settings):
    agent = create_agent(create_kernel_builder(mistral_settings), "Fri", "Svar kort.")
    assert agent.instructions == "Svar kort."
    assert isinstance(agent.execution_settings, MistralExecutionSettings)


def test_model_names_are_stripped():
    azure = Settings.from_mapping(
        {
            "AZURE_OPENAI_MODEL_NAME": "  gpt-4o-postmottak \n",
            "AZURE_OPENAI_API_KEY": "azure-key",
            "AZURE_OPENAI_ENDPOINT": "https://postmottak.openai.azure.com/",
        }
    )
    assert create_kernel_builder(azure).model == "gpt-4o-postmottak"

    mistral = Settings.from_mapping(
        {"AI_PROVIDER": "Mistral", "MISTRAL_API_KEY": "k", "MISTRAL_MODEL_NAME": " mistral-small-latest "}
    )
    assert create_kernel_builder(mistral).model == "mistral-small-latest"

    blank_model = Settings.from_mapping({"AI_PROVIDER": "Mistral", "MISTRAL_API_KEY": "k", "MISTRAL_MODEL_NAME": "  "})
    assert create_kernel_builder(blank_model).model == "mistral-large-latest"


def test_later_builder_does_not_raise_sink_level(azure_settings):
    first = create_kernel_builder(azure_settings, log_level=logging.INFO)
    second = create_kernel_builder(azure_settings, log_level=logging.WARNING)

    console = next(h for h in logger.handlers if h.get_name() == CONSOLE_SINK)
    assert console.level == logging.INFO
    assert first.build().log_level == logging.INFO
    assert second.build().log_level == logging.WARNING
