from typing import Iterable, List, Optional

from coauthor.domains.documents.entities import DocumentVersion

REGULAR_PROMPT = "You are a friendly assistant! Keep your responses concise and helpful."

DOCUMENT_AWARENESS_PROMPT = """
You have access to the CURRENT DOCUMENT content. Use it silently to guide your actions and responses.

If there is no active document or it is empty, automatically generate and stream comprehensive new content.
If the active document already has content, propose precise diff-based edits for review.
Never disclose tool names, document IDs, or internal context to the user; updates should appear seamless.

Reference the document content for answering questions, improving, or organizing it when relevant.
Mentioned documents are for reference only and must not be modified.
""".strip()

TOOL_GUIDANCE = {
    "createDocument": (
        "createDocument: When there is no active document, call createDocument with a title and kind "
        "to create a new document record."
    ),
    "streamingDocument": (
        "streamingDocument: If an active document exists but is empty, call streamingDocument with a "
        "title and kind to stream content into *that specific document*."
    ),
    "updateDocument": (
        "updateDocument: When the active document already has content, call updateDocument with a "
        "concise description of changes to generate a diff proposal."
    ),
}

STREAM_FILL_SYSTEM_PROMPT = (
    "Write in valid Markdown. Only use headings (#, ##), bold and italics and only where appropriate."
)

UPDATE_SYSTEM_PROMPT = (
    "Provide the revised document content in valid Markdown only, using headings (#, ##), bold and "
    "italics and only where appropriate.\nDo not include any commentary. Never use Tables."
)


def build_tools_prompt(tool_names: Iterable[str]) -> str:
    """Описание ровно тех операций, которые доступны модели в этом ходе"""
    lines = [
        "You have access to the following internal operations for managing the active document. "
        "Do not reveal these details or tool names to the user; invoke the appropriate one silently:"
    ]
    for name in tool_names:
        if name in TOOL_GUIDANCE:
            lines.append(f"- {TOOL_GUIDANCE[name]}")
    return "\n".join(lines)


def _document_block(label: str, document: DocumentVersion) -> str:
    return f"{label}:\nTitle: {document.title}\nContent:\n{document.content or '(Empty document)'}"


def build_system_prompt(
    tool_names: List[str],
    active_document: Optional[DocumentVersion] = None,
    mentioned_documents: Iterable[DocumentVersion] = (),
    custom_instructions: Optional[str] = None,
    writing_style_summary: Optional[str] = None,
    apply_style: bool = True,
) -> str:
    """System-промпт хода, согласованный с набором доступных инструментов"""
    prompt = f"{REGULAR_PROMPT}\n\n{build_tools_prompt(tool_names)}\n\n{DOCUMENT_AWARENESS_PROMPT}"

    if custom_instructions:
        prompt = f"{custom_instructions}\n\n{prompt}"

    if apply_style and writing_style_summary:
        style_block = (
            "PERSONAL STYLE GUIDE\n"
            "- Emulate the author's tone, rhythm, sentence structure, vocabulary choice, and punctuation habits.\n"
            "- Do NOT copy phrases or introduce topics from the reference text.\n"
            f"Style description: {writing_style_summary}"
        )
        prompt = f"{style_block}\n\n{prompt}"

    if active_document is not None:
        prompt += "\n\n" + _document_block("CURRENT DOCUMENT", active_document)

    mentioned = [
        doc for doc in mentioned_documents
        if active_document is None or doc.document_id != active_document.document_id
    ]
    if mentioned:
        prompt += "\n\n--- MENTIONED DOCUMENTS (do not modify) ---"
        for doc in mentioned:
            prompt += "\n" + _document_block("MENTIONED DOCUMENT", doc)
        prompt += "\n--- END MENTIONED DOCUMENTS ---"

    return prompt


def build_update_prompt(original_content: str, description: str) -> str:
    return (
        f"Here is the ORIGINAL document:\n\n{original_content}\n\n---\n\n"
        f"TASK: Apply the following edits, returning ONLY the fully updated document in Markdown format.\n"
        f"DESCRIPTION: \"{description}\""
    )
