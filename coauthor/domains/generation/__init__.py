from coauthor.domains.generation.client import (
    TextGenerator, OpenAITextGenerator, ToolCall, TurnChunk, get_text_generator
)

__all__ = [
    "TextGenerator", "OpenAITextGenerator", "ToolCall", "TurnChunk", "get_text_generator",
]
