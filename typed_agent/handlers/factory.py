"""Factory for creating model handlers.

This module provides a factory pattern implementation for creating model
handlers from ``"<provider>:<model>"`` identifiers, supporting multiple
providers through registered implementations.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from pydantic import ValidationError as PydanticValidationError

from typed_agent.core.errors import ConfigError
from typed_agent.core.logging_config import get_logger

from .base import ModelHandler, ModelHandlerConfig

logger = get_logger(__name__)


def parse_model_id(model_id: str) -> Tuple[str, str]:
    """Split ``"<provider>:<model>"``.

    Raises:
        ConfigError: If the identifier is malformed
    """
    provider, sep, model = (model_id or "").partition(":")
    if not sep or not provider.strip() or not model.strip():
        raise ConfigError(f"Invalid model identifier '{model_id}'; expected '<provider>:<model>'")
    return provider.strip(), model.strip()


class ModelHandlerFactory:
    """Factory for creating model handlers.

    This factory manages:
    - Registration of handler implementations per provider
    - Registration of custom factory functions
    - Handler creation from a model identifier

    Usage:
        factory = ModelHandlerFactory()
        factory.register('openai', PydanticAIModelHandler)
        handler = factory.create('openai:gpt-4o-mini', temperature=0.2)
    """

    def __init__(self) -> None:
        self._implementations: Dict[str, Type[ModelHandler]] = {}
        self._factories: Dict[str, Callable[[ModelHandlerConfig], ModelHandler]] = {}

    def register(self, provider: str, implementation: Type[ModelHandler]) -> None:
        """Register a handler implementation for a provider.

        Args:
            provider: Provider identifier (e.g. 'openai')
            implementation: ModelHandler subclass for this provider

        Raises:
            ConfigError: If the provider is already registered
        """
        if provider in self._implementations:
            raise ConfigError(f"Provider '{provider}' is already registered")
        self._implementations[provider] = implementation

    def register_factory(self, provider: str, factory_func: Callable[[ModelHandlerConfig], ModelHandler]) -> None:
        """Register a factory function for creating handlers.

        This allows custom creation logic beyond simple class instantiation,
        and takes precedence over a registered implementation class.

        Raises:
            ConfigError: If a factory for the provider is already registered
        """
        if provider in self._factories:
            raise ConfigError(f"Factory for provider '{provider}' is already registered")
        self._factories[provider] = factory_func

    def unregister(self, provider: str) -> None:
        self._implementations.pop(provider, None)
        self._factories.pop(provider, None)

    def is_registered(self, provider: str) -> bool:
        return provider in self._implementations or provider in self._factories

    def get_registered_providers(self) -> List[str]:
        return sorted(set(self._implementations) | set(self._factories))

    def create(self, model_id: str, **options: Any) -> ModelHandler:
        """Create a handler for ``model_id``.

        No network activity happens here, so configuration mistakes surface
        before the first model call.

        Args:
            model_id: ``"<provider>:<model>"``
            **options: ModelHandlerConfig fields (temperature, max_tokens, ...)

        Returns:
            ModelHandler instance

        Raises:
            ConfigError: If the identifier is malformed, the provider unknown, or an option invalid
        """
        provider, model = parse_model_id(model_id)
        if not self.is_registered(provider):
            raise ConfigError(
                f"Provider '{provider}' is not registered. Available: {self.get_registered_providers()}"
            )
        try:
            config = ModelHandlerConfig(provider=provider, model=model, **options)
        except PydanticValidationError as e:
            raise ConfigError(f"Invalid model options for '{model_id}': {e}") from e

        if provider in self._factories:
            handler = self._factories[provider](config)
        else:
            handler = self._implementations[provider](config)
        logger.debug(f"Created model handler {handler!r}")
        return handler


_default_factory: Optional[ModelHandlerFactory] = None


def get_handler_factory() -> ModelHandlerFactory:
    """Get the global handler factory, with the pydantic-ai providers registered.

    Returns:
        ModelHandlerFactory instance
    """
    global _default_factory
    if _default_factory is None:
        from .adapters.pydantic_ai import SUPPORTED_PROVIDERS, PydanticAIModelHandler

        factory = ModelHandlerFactory()
        for provider in SUPPORTED_PROVIDERS:
            factory.register(provider, PydanticAIModelHandler)
        _default_factory = factory
    return _default_factory


def create_handler(model_id: str, **options: Any) -> ModelHandler:
    return get_handler_factory().create(model_id, **options)
