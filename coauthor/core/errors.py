class CoauthorError(Exception):
    """Базовая ошибка доменного слоя"""


class InvalidIdentifier(CoauthorError):
    """Идентификатор отсутствует или не является UUID"""


class NotFoundOrUnauthorized(CoauthorError):
    """Документ не существует или принадлежит другому пользователю"""

    def __init__(self, message: str = "Document not found or unauthorized"):
        super().__init__(message)


class SlugConflict(CoauthorError):
    """Slug уже занят другим опубликованным документом владельца"""

    def __init__(self, message: str = "A document with this name is already published"):
        super().__init__(message)


class ChatAssociationInvalid(CoauthorError):
    """Чат не найден; связь с ним отбрасывается без падения операции"""


class GenerationFailure(CoauthorError):
    """Ошибка модели генерации текста"""


class InvalidToolArguments(CoauthorError):
    """Аргументы вызова инструмента не являются JSON-объектом"""
