from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str
    sql_echo: bool = False

    jwt_secret: str
    jwt_algorithm: str = "HS256"

    # Модели генерации
    openai_api_key: str = ""
    openai_base_url: Optional[str] = None
    chat_model: str = "gpt-4o-mini"
    artifact_model: str = "gpt-4o-mini"
    completion_model: str = "gpt-4o-mini"

    # Версионирование: порог слияния правок в текущую версию
    version_merge_threshold_minutes: int = 10

    # Пауза, чтобы редактор успел инициализироваться до начала стрима
    create_settle_delay_seconds: float = 4.5
    stream_fill_settle_delay_seconds: float = 3.0
    max_tool_steps: int = 5

    # Инлайн-подсказки
    completion_min_context_chars: int = 5
    completion_debounce_ms: int = 300
    completion_max_chars: int = 100
    completion_context_window_text: int = 200
    completion_context_window_code: int = 500

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
