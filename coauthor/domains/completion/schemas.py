from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class CompletionRequest(BaseModel):
    """Запрос подсказки: текст до и после курсора в текущем блоке"""
    model_config = ConfigDict(populate_by_name=True)

    document_id: str = Field(alias="documentId")
    context_before: str = Field(alias="currentContent")
    context_after: str = Field(default="", alias="contextAfter")
    block_type: Optional[str] = Field(default=None, alias="nodeType")
    suggestion_length: Literal["short", "medium", "long"] = Field(default="medium", alias="suggestionLength")
    custom_instructions: Optional[str] = Field(default=None, alias="customInstructions")


class CompletionAcceptRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    context_before: str = Field(alias="currentContent")
    suggestion: str
    context_after: str = Field(default="", alias="contextAfter")
    block_type: Optional[str] = Field(default=None, alias="nodeType")


class CompletionAcceptResponse(BaseModel):
    text: str
    cursor: int
    list_items_added: int = Field(default=0, serialization_alias="listItemsAdded")
