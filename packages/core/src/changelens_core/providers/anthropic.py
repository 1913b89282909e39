from __future__ import annotations

from changelens_core.providers.base import ApiResult, BaseClassifier


class AnthropicClassifier(BaseClassifier):
    MODEL = "claude-sonnet-4-20250514"
    # Low temperature: the same PRs should get the same category run to run.
    TEMPERATURE = 0.2
    PROMPT_PRICE_PER_M = 3.0
    OUTPUT_PRICE_PER_M = 15.0

    def __init__(self, api_key: str):
        try:
            from anthropic import Anthropic
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for this provider. "
                "Install it with: pip install 'changelens[anthropic]'"
            )
        self.client = Anthropic(api_key=api_key)

    def _call_api(self, model: str, system_prompt: str, user_prompt: str) -> ApiResult:
        # anthropic is optional; __init__ already checked it is importable.
        from anthropic.types import TextBlock

        response = self.client.messages.create(
            model=model,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
        )
        text_blocks = [block.text for block in response.content if isinstance(block, TextBlock)]
        usage = response.usage
        return ApiResult(
            text="".join(text_blocks).strip(),
            prompt_tokens=usage.input_tokens if usage else 0,
            output_tokens=usage.output_tokens if usage else 0,
        )
