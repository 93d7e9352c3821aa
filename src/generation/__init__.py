"""External text-generation client.

Shared Utilities (from src/common/):
    - config: load_generation_config(), GenerationConfig
    - errors: AuthError, UpstreamRateLimitError, TransientUpstreamError

Modules:
    models: ChatMessage, GenerationRequest, GenerationResponse, ErrorKind
    transports: ChatCompletionsTransport (requests), GeminiTransport (google-genai)
    client: GenerationClient with tenacity retry and failure classification
"""

from src.generation.client import GenerationClient
from src.generation.models import ChatMessage, ErrorKind, GenerationRequest, GenerationResponse

__all__ = [
    "ChatMessage",
    "ErrorKind",
    "GenerationClient",
    "GenerationRequest",
    "GenerationResponse",
]
