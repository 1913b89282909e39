from __future__ import annotations

try:
    from openai import OpenAI as _OpenAI
except ImportError:
    _OpenAI = None  # type: ignore[assignment,misc]

from changelens_core.providers.base import ApiResult, BaseClassifier


class OpenAIClassifier(BaseClassifier):
    MODEL = "gpt-4o"
    TEMPERATURE = 0.2
    PROMPT_PRICE_PER_M = 2.5
    OUTPUT_PRICE_PER_M = 10.0

    def __init__(self, api_key: str):
        if _OpenAI is None:
            raise ImportError(
                "The 'openai' package is required for this provider. "
                "Install it with: pip install 'changelens[openai]'"
            )
        self.client = _OpenAI(api_key=api_key)

    def _call_api(self, model: str, system_prompt: str, user_prompt: str) -> ApiResult:
        response = self.client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
            response_format={"type": "json_object"},
        )
        usage = response.usage
        return ApiResult(
            text=response.choices[0].message.content or "",
            prompt_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )
