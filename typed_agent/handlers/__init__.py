"""
Model handler abstraction.

- ``ModelHandler`` – interface performing one model exchange.
- ``ModelHandlerConfig`` / ``ModelTurn`` / ``ModelTurnDelta`` – its data models.
- ``ModelHandlerFactory`` – creates handlers from ``"<provider>:<model>"`` ids.
"""

from .base import ModelHandler, ModelHandlerConfig, ModelTurn, ModelTurnDelta
from .factory import ModelHandlerFactory, create_handler, get_handler_factory, parse_model_id

__all__ = [
    "ModelHandler",
    "ModelHandlerConfig",
    "ModelTurn",
    "ModelTurnDelta",
    "ModelHandlerFactory",
    "create_handler",
    "get_handler_factory",
    "parse_model_id",
]
