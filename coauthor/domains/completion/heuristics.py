"""Классификация содержимого, правила остановки и вставка принятой подсказки."""

import re
from typing import List, Optional, Tuple

from coauthor.domains.completion.entities import AcceptedSuggestion, ContentClass

CODE_BLOCK_TYPES = {"code_block", "code", "codeblock"}
MARKDOWN_BLOCK_TYPES = {"heading", "list_item", "bullet_list", "ordered_list", "blockquote", "listitem"}
LIST_BLOCK_TYPES = {"list_item", "bullet_list", "ordered_list", "listitem"}

CODE_START = re.compile(r"^(function|const|let|var|import|export|class|if|for|while|def|return)\b")
CODE_TOKENS = ("{", "}", ";", "=>")
MARKDOWN_LINE = re.compile(r"^\s*(#{1,6} |[-*+] |\d+[.)] |> )")
LIST_LINE = re.compile(r"^(\s*)([-*+]|\d+[.)])(\s+)")

MARKDOWN_BOUNDARY = re.compile(r"\n(?=\s*(#{1,6} |[-*+] |\d+[.)] ))")
SENTENCE_END = re.compile(r"[.!?] ")
RETURN_TOKEN = "return "
PARTIAL_MARKDOWN_BOUNDARY = re.compile(r"\n\s*(#{1,6}|[-*+]|\d+[.)]?)?\Z")

DEFAULT_MAX_CHARS = 100


def current_line(text_before: str) -> str:
    return text_before.rsplit("\n", 1)[-1]


def classify_content(text_before: str, block_type: Optional[str] = None) -> ContentClass:
    block_type = (block_type or "").lower()
    if block_type in CODE_BLOCK_TYPES:
        return ContentClass.CODE
    if block_type in MARKDOWN_BLOCK_TYPES:
        return ContentClass.MARKDOWN

    stripped = text_before.lstrip()
    if CODE_START.match(stripped) or any(token in text_before for token in CODE_TOKENS):
        return ContentClass.CODE
    if MARKDOWN_LINE.match(current_line(text_before)):
        return ContentClass.MARKDOWN
    return ContentClass.TEXT


def _code_stop(suggestion: str) -> Optional[int]:
    candidates = []
    for token in ("}", ";"):
        index = suggestion.find(token)
        if index != -1:
            candidates.append(index + 1)

    newline = suggestion.find("\n")
    if newline != -1:
        candidates.append(newline)

    # return начинает новую конструкцию, если перед ним уже что-то предложено
    start = 0
    while True:
        index = suggestion.find(RETURN_TOKEN, start)
        if index == -1:
            break
        if suggestion[:index].strip():
            candidates.append(index)
            break
        start = index + 1

    return min(candidates) if candidates else None


def _markdown_stop(suggestion: str) -> Optional[int]:
    match = MARKDOWN_BOUNDARY.search(suggestion)
    return match.start() if match else None


def _text_stop(suggestion: str) -> Optional[int]:
    match = SENTENCE_END.search(suggestion)
    return match.start() + 1 if match else None


CLASS_STOPS = {
    ContentClass.CODE: _code_stop,
    ContentClass.MARKDOWN: _markdown_stop,
    ContentClass.TEXT: _text_stop,
}


def find_stop(suggestion: str, content_class: ContentClass, max_chars: int = DEFAULT_MAX_CHARS) -> Optional[int]:
    """Позиция, на которой подсказку нужно оборвать, или None, если генерация продолжается.

    Текст подсказки обрезается по найденной границе, а не отбрасывается
    целиком вместе с последней дельтой.
    """
    candidates = []

    double_newline = suggestion.find("\n\n")
    if double_newline != -1:
        candidates.append(double_newline)
    if len(suggestion) > max_chars:
        candidates.append(max_chars)

    class_stop = CLASS_STOPS[content_class](suggestion)
    if class_stop is not None:
        candidates.append(class_stop)

    return min(candidates) if candidates else None


def hold_from(suggestion: str, content_class: ContentClass) -> int:
    """Начало хвоста, который следующая дельта может превратить в границу остановки"""
    hold = len(suggestion)
    if suggestion.endswith("\n"):
        hold -= 1

    if content_class == ContentClass.CODE:
        for size in range(len(RETURN_TOKEN) - 1, 0, -1):
            if suggestion.endswith(RETURN_TOKEN[:size]):
                hold = min(hold, len(suggestion) - size)
                break
    elif content_class == ContentClass.MARKDOWN:
        match = PARTIAL_MARKDOWN_BOUNDARY.search(suggestion)
        if match:
            hold = min(hold, match.start())

    return hold


def clip_delta(
    generated: str,
    emitted: int,
    content_class: ContentClass,
    max_chars: int = DEFAULT_MAX_CHARS,
    final: bool = False,
) -> Tuple[str, bool]:
    """Новая видимая часть подсказки и признак остановки.

    ``generated`` содержит весь полученный от модели текст, ``emitted`` сколько
    его уже показано. Граница ищется по всему накопленному тексту; хвост,
    который может оказаться ее началом (``retur``, перевод строки перед
    маркером списка), придерживается до следующей дельты. ``final`` отдает
    придержанный хвост, когда поток закончился.
    """
    stop = find_stop(generated, content_class, max_chars)
    if stop is not None:
        return generated[emitted:max(stop, emitted)], True
    end = len(generated) if final else hold_from(generated, content_class)
    return generated[emitted:max(end, emitted)], False


def list_marker(text_before: str, block_type: Optional[str] = None) -> Optional[str]:
    """Маркер текущего пункта списка, если курсор внутри списка"""
    match = LIST_LINE.match(current_line(text_before))
    if match:
        return match.group(2)
    if (block_type or "").lower() in LIST_BLOCK_TYPES:
        return "-"
    return None


def _next_marker(marker: str) -> str:
    ordered = re.match(r"^(\d+)([.)])$", marker)
    if ordered:
        return f"{int(ordered.group(1)) + 1}{ordered.group(2)}"
    return marker


def _strip_marker(line: str) -> str:
    match = LIST_LINE.match(line)
    return line[match.end():] if match else line.lstrip()


def apply_suggestion(
    text_before: str, suggestion: str, text_after: str = "", block_type: Optional[str] = None
) -> AcceptedSuggestion:
    """Вставка подсказки в позицию курсора.

    Многострочная подсказка внутри списка превращается в новые пункты
    с продолжением нумерации, а не в сырые переводы строк.
    """
    marker = list_marker(text_before, block_type)
    lines = suggestion.split("\n")

    if marker is None or len(lines) == 1:
        text = text_before + suggestion + text_after
        return AcceptedSuggestion(text=text, cursor=len(text_before) + len(suggestion))

    indent_match = LIST_LINE.match(current_line(text_before))
    indent = indent_match.group(1) if indent_match else ""

    inserted = lines[0]
    items: List[str] = []
    next_marker = marker
    for line in lines[1:]:
        content = _strip_marker(line)
        if not content.strip():
            continue
        next_marker = _next_marker(next_marker)
        items.append(f"{indent}{next_marker} {content}")

    if items:
        inserted += "\n" + "\n".join(items)

    text = text_before + inserted + text_after
    return AcceptedSuggestion(
        text=text,
        cursor=len(text_before) + len(inserted),
        list_items_added=len(items),
        list_marker=marker,
    )
