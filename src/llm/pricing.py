"""Per-model token pricing (USD per 1M tokens)."""

from typing import NamedTuple


class ModelPricing(NamedTuple):
    """Rates in USD per one million tokens."""
    input: float
    output: float

    def cost(self, input_tokens: int, output_tokens: int) -> float:
        """cost = input_tokens * rate_in + output_tokens * rate_out."""
        return (input_tokens / 1_000_000) * self.input + (output_tokens / 1_000_000) * self.output


FREE = ModelPricing(0.0, 0.0)

# Used for models missing from a provider table so spend is never reported as zero
DEFAULT_PRICING = ModelPricing(0.50, 1.50)

# Prices as of 2025
GROQ_PRICING = {
    "llama-3.3-70b-versatile": ModelPricing(0.59, 0.79),
    "llama-3.1-70b-versatile": ModelPricing(0.59, 0.79),
    "llama-3.1-8b-instant": ModelPricing(0.05, 0.10),
    "llama-4-scout": ModelPricing(0.11, 0.34),
    "llama-4-maverick": ModelPricing(0.50, 0.77),
    "mixtral-8x7b-32768": ModelPricing(0.24, 0.24),
    "gemma-7b-it": ModelPricing(0.07, 0.07),
}

OPENAI_PRICING = {
    "gpt-4o-mini": ModelPricing(0.15, 0.60),
    "gpt-4o": ModelPricing(2.50, 10.00),
    "gpt-4o-2024-08-06": ModelPricing(2.50, 10.00),
    "gpt-4-turbo": ModelPricing(10.00, 30.00),
    "gpt-3.5-turbo": ModelPricing(0.50, 1.50),
}

ANTHROPIC_PRICING = {
    "claude-3-5-sonnet-20241022": ModelPricing(3.00, 15.00),
    "claude-3-5-haiku-20241022": ModelPricing(0.25, 1.25),
    "claude-3-opus-20240229": ModelPricing(15.00, 75.00),
    "claude-3-sonnet-20240229": ModelPricing(3.00, 15.00),
    "claude-3-haiku-20240307": ModelPricing(0.25, 1.25),
}

# https://openrouter.ai/models
OPENROUTER_PRICING = {
    "openai/gpt-4o-mini": ModelPricing(0.15, 0.60),
    "openai/gpt-4o": ModelPricing(2.50, 10.00),
    "anthropic/claude-3.5-sonnet": ModelPricing(3.00, 15.00),
    "anthropic/claude-3-haiku": ModelPricing(0.25, 1.25),
    "google/gemini-flash-1.5": ModelPricing(0.075, 0.30),
    "meta-llama/llama-3.1-8b-instruct": ModelPricing(0.05, 0.08),
}
