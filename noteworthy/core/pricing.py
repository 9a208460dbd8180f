"""Embedding model pricing (USD per 1M input tokens).

Used by the usage recorder to attach a cost estimate to every usage row and
by GET /v1/stats/usage. Self-hosted models cost nothing.
"""

EMBEDDING_PRICING: dict[str, float] = {
    # OpenAI
    "text-embedding-3-small": 0.02,
    "text-embedding-3-large": 0.13,
    "text-embedding-ada-002": 0.10,
    # Ollama / local
    "nomic-embed-text": 0.0,
    "mxbai-embed-large": 0.0,
    "all-minilm": 0.0,
}

DEFAULT_EMBEDDING_PRICE = 0.10


def get_embedding_price(model: str) -> float:
    """Return USD per 1M input tokens for an embedding model."""
    return EMBEDDING_PRICING.get(model, DEFAULT_EMBEDDING_PRICE)


def calc_embedding_cost(model: str, input_tokens: int, self_hosted: bool = False) -> float:
    if self_hosted:
        return 0.0
    return input_tokens * get_embedding_price(model) / 1_000_000
