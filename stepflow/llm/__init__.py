"""Model-call collaborator."""

from .client import (
    ModelClient,
    ModelRequest,
    ModelResponse,
    PydanticAIModelClient,
    qualify_model_name,
)
from .output import parse_json_output, validate_output

__all__ = [
    "ModelClient",
    "ModelRequest",
    "ModelResponse",
    "PydanticAIModelClient",
    "qualify_model_name",
    "parse_json_output",
    "validate_output",
]
