from .async_client import AsyncClient
from .batch_files import BatchFileBuilder
from .client import Client, OpenAI
from .errors import *  # noqa: F401,F403
from .errors import __all__ as _error_names
from .helpers import (
    Conversation,
    MessageBuilder,
    ToolDefinition,
    ToolExecutor,
    cosine_similarity,
    count_messages_tokens_approx,
    count_tokens_approx,
    encode_image,
    format_tool_calls_for_display,
    image_to_data_url,
    rank_by_similarity,
)
from .models import *  # noqa: F401,F403
from .pagination import apaginate, paginate
from .retry import RetryConfig, RetryHandler, with_retry
from .streaming import AsyncStream, Stream, merge_chunks
from .transport import APIRequest, AsyncHTTPTransport, HTTPTransport
