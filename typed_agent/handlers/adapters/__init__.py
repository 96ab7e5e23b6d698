"""Model handler adapters for concrete model frameworks."""

from .pydantic_ai import SUPPORTED_PROVIDERS, PydanticAIModelHandler

__all__ = ["PydanticAIModelHandler", "SUPPORTED_PROVIDERS"]
