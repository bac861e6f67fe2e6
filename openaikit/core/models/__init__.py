from .base import BaseModel, DeletionResponse, ListPage, Usage, parse_list, serialize
from .chat import (
    ChatCompletion,
    ChatCompletionChunk,
    ChatMessage,
    Choice,
    ChoiceLogprobs,
    ContentPart,
    DeltaMessage,
    FunctionCall,
    ImageURL,
    StreamChoice,
    TokenLogprob,
    ToolCall,
    ToolChoice,
    TopLogprob,
    decode_message_content,
    decode_stop,
    decode_tool_choice,
)
from .embeddings import Embedding, EmbeddingResponse, EmbeddingVector, validate_embedding_input
from .media import (
    ImageObject,
    ImageResponse,
    ImageUsage,
    SpeechResponse,
    TranscriptionResponse,
    TranscriptionSegment,
    TranscriptionWord,
    TranslationResponse,
)
from .objects import (
    FILE_PURPOSES,
    Batch,
    BatchError,
    BatchErrors,
    BatchRequestLine,
    BatchResponseData,
    BatchResult,
    FileObject,
    ModelInfo,
    ModelList,
    ModerationResponse,
    ModerationResult,
    RequestCounts,
)
from .responses import Response, ResponseOutputItem, ResponseStreamEvent, ResponseUsage
