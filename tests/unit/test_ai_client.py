import unittest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from prospector.core.ai_client import LLMClient, parse_json_lenient, strip_code_fences
from prospector.core.cost_tracker import cost_tracker


class TestParseJsonLenient(unittest.TestCase):
    def test_plain_json(self):
        self.assertEqual(parse_json_lenient('[{"type": "expansion"}]'), [{"type": "expansion"}])

    def test_markdown_fences(self):
        raw = 'Here you go:\n```json\n{"signals": []}\n```'
        self.assertEqual(strip_code_fences(raw), '{"signals": []}')
        self.assertEqual(parse_json_lenient(raw), {"signals": []})

    def test_prose_around_payload(self):
        raw = 'I found these companies: [{"name": "Northwind"}] Hope that helps.'
        self.assertEqual(parse_json_lenient(raw), [{"name": "Northwind"}])

    def test_trailing_comma_is_repaired(self):
        self.assertEqual(parse_json_lenient('{"name": "Northwind", "domain": "northwind.io",}'),
                         {"name": "Northwind", "domain": "northwind.io"})

    def test_unusable_output(self):
        self.assertIsNone(parse_json_lenient(None))
        self.assertIsNone(parse_json_lenient("   "))
        self.assertIsNone(parse_json_lenient("Sorry, I cannot help with that."))


@pytest.mark.asyncio
class TestLLMClient:
    def setup_method(self):
        cost_tracker.reset()

    async def test_anthropic_completion_logs_usage(self):
        anthropic = MagicMock()
        anthropic.messages.create = AsyncMock(return_value=SimpleNamespace(
            content=[SimpleNamespace(type="text", text='{"ok": true}')],
            usage=SimpleNamespace(input_tokens=1000, output_tokens=1000),
        ))
        client = LLMClient(anthropic_client=anthropic, model="claude-3-haiku-20240307")

        text = await client.complete("hello", purpose="test")

        assert text == '{"ok": true}'
        assert cost_tracker.cost_by_purpose()["test"] == pytest.approx(0.0015)
        kwargs = anthropic.messages.create.call_args.kwargs
        assert kwargs["messages"] == [{"role": "user", "content": "hello"}]

    async def test_openai_compatible_completion(self):
        openai = MagicMock()
        openai.chat.completions.create = AsyncMock(return_value=SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="[]"))],
            usage=None,
        ))
        client = LLMClient(openai_client=openai, model="gpt-4o-mini")

        assert await client.complete("hello") == "[]"
        assert cost_tracker.get_total_cost() == 0.0


def test_client_requires_a_provider():
    with pytest.raises(ValueError):
        LLMClient()
