"""Tests for the chat model factory and the LangChain text generator."""

import pytest
from langchain_core.messages import AIMessage

from intentflow.llm import LangChainTextGenerator, LLMConfig, create_llm
from intentflow.llm.factory import split_model_id


@pytest.mark.parametrize(
    "model, expected",
    [
        ("gpt-4o-mini", ("openai", "gpt-4o-mini")),
        ("azure/gpt-4o", ("azure", "gpt-4o")),
        ("claude-sonnet-4-5-20250929", ("anthropic", "claude-sonnet-4-5-20250929")),
        ("gemini/gemini-2.0-flash", ("gemini", "gemini-2.0-flash")),
        ("ollama/llama3.2", ("ollama", "llama3.2")),
        ("deepseek/deepseek-chat", ("deepseek", "deepseek-chat")),
        ("unknown/model", ("openai", "unknown/model")),
    ],
)
def test_split_model_id(model, expected):
    assert split_model_id(model) == expected


def test_missing_api_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    with pytest.raises(ValueError, match="OPENAI_API_KEY"):
        create_llm("gpt-4o-mini", temperature=0.0)


class FakeChatModel:
    def __init__(self, reply):
        self.reply = reply
        self.messages = None

    async def ainvoke(self, messages):
        self.messages = messages
        return self.reply


@pytest.mark.asyncio
async def test_generator_sends_system_and_user_messages():
    llm = FakeChatModel(AIMessage(content="inventory"))
    generator = LangChainTextGenerator(llm=llm)

    reply = await generator.generate("You route requests.", "抽纸消耗1包")

    assert reply == "inventory"
    assert llm.messages == [
        {"role": "system", "content": "You route requests."},
        {"role": "user", "content": "抽纸消耗1包"},
    ]


@pytest.mark.asyncio
async def test_generator_flattens_content_blocks():
    llm = FakeChatModel(AIMessage(content=[{"type": "text", "text": "{\"targetAgent\": "}, "\"finance\"}"]))

    reply = await LangChainTextGenerator(config=LLMConfig(model="azure/x"), llm=llm).generate("s", "u")

    assert reply == '{"targetAgent": "finance"}'
