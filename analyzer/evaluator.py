"""
Claude-backed framework evaluator.

Builds the framework prompt from the scraped content, calls the Anthropic API
(tenacity handles transient errors) and repairs the JSON response.
"""

import logging
from typing import Any, Dict

from analyzer.frameworks import FrameworkId, get_framework
from analyzer.models import ScrapedContent
from analyzer.prompts import build_content_block, get_framework_prompt
from utils.clients.anthropic import call_anthropic_api_with_retry
from utils.parsing.json import repair_and_parse_json

logger = logging.getLogger(__name__)


class ClaudeFrameworkEvaluator:
    """Evaluate(framework, content, deadline) -> structured data, via Claude"""

    def __init__(self, model: str = None, max_tokens: int = None, excerpt_chars: int = 3000):
        self.model = model
        self.max_tokens = max_tokens
        self.excerpt_chars = excerpt_chars

    def build_prompt(self, framework_id: FrameworkId, content: ScrapedContent) -> str:
        config = get_framework(framework_id)
        block = build_content_block(content.url, content, self.excerpt_chars)
        return get_framework_prompt(config.task_description, block)

    async def evaluate(
        self, framework_id: FrameworkId, content: ScrapedContent, deadline: float
    ) -> Dict[str, Any]:
        # The deadline itself is enforced by the runner around this call
        prompt = self.build_prompt(framework_id, content)
        logger.info(f"🤖 Calling Claude for {framework_id.value} ({content.url})")
        response_text = await call_anthropic_api_with_retry(
            prompt, model=self.model, max_tokens=self.max_tokens
        )
        data = repair_and_parse_json(response_text)
        data.setdefault("framework", framework_id.value)
        return data
