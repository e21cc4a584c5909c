"""Конфигурация приложения."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Настройки приложения."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # LLM настройки
    llm_provider: str = Field(default="groq", description="Основной LLM провайдер")
    llm_model: str = Field(default="", description="Модель LLM (пусто = модель провайдера по умолчанию)")
    llm_fallback_providers: str = Field(
        default="openai",
        description="Резервные провайдеры через запятую в порядке приоритета (например: 'openai,anthropic')",
    )
    llm_timeout: float = Field(default=60.0, description="Таймаут запроса к LLM в секундах")
    ollama_url: str = Field(
        default="http://localhost:11434", description="URL Ollama сервера"
    )

    # API ключи
    groq_api_key: str = Field(default="", description="Groq API ключ")
    openai_api_key: str = Field(default="", description="OpenAI API ключ")
    anthropic_api_key: str = Field(default="", description="Anthropic API ключ")
    openrouter_api_key: str = Field(default="", description="OpenRouter API ключ")

    # OpenRouter provider routing
    # https://openrouter.ai/docs/features/provider-routing
    openrouter_provider_order: str = Field(
        default="",
        description="Список провайдеров через запятую в порядке приоритета (например: 'azure,openai')"
    )
    openrouter_allow_fallbacks: bool = Field(
        default=True, description="Разрешать fallback на другие провайдеры при ошибках"
    )

    # Бюджет
    cost_ceiling_usd: float = Field(
        default=0.05, ge=0, description="Максимальные расходы на LLM для одной вакансии (USD)"
    )
    run_cost_ceiling_usd: float = Field(
        default=0.0, ge=0, description="Общий лимит расходов на процесс (0 = без лимита)"
    )

    # Распознавание форм
    min_detection_confidence: float = Field(
        default=0.5, ge=0, le=1, description="Минимальная общая уверенность детектора"
    )
    min_field_confidence: float = Field(
        default=0.5, ge=0, le=1, description="Поля с меньшей уверенностью пропускаются (если не обязательные)"
    )
    max_detection_attempts: int = Field(default=2, ge=1, description="Попытки распознавания формы")
    max_markup_chars: int = Field(default=8000, ge=500, description="Максимальный размер HTML для LLM")
    required_fields: str = Field(
        default="title,description", description="Обязательные типы полей через запятую"
    )

    # Параллелизм и таймауты
    max_concurrency: int = Field(default=3, ge=1, description="Максимум одновременных публикаций")
    board_timeout: float = Field(default=180.0, gt=0, description="Общий таймаут публикации на доску (сек)")
    submit_timeout: float = Field(default=30.0, gt=0, description="Таймаут фазы отправки формы (сек)")
    confirmation_timeout: float = Field(
        default=15.0, gt=0, description="Ожидание подтверждения после отправки (сек)"
    )
    cancel_grace_period: float = Field(
        default=10.0, ge=0, description="Время на корректное завершение задач при отмене (сек)"
    )
    pacing_min_delay: float = Field(default=0.3, ge=0, description="Минимальная пауза между действиями (сек)")
    pacing_max_delay: float = Field(default=0.8, ge=0, description="Максимальная пауза между действиями (сек)")

    # Браузер
    headless: bool = Field(default=True, description="Запускать браузер без GUI")
    screenshot_dir: str = Field(default="", description="Куда сохранять скриншоты ошибок (пусто = не сохранять)")

    # Внешние интерфейсы
    status_webhook_url: str = Field(default="", description="URL для отправки статусов публикации")
    db_path: str = Field(default="./data/postings.db", description="Путь к SQLite базе")
    boards_file: str = Field(default="", description="JSON файл с каталогом досок (пусто = встроенный)")

    @property
    def fallback_providers(self) -> list[str]:
        """Список резервных провайдеров: "openai,anthropic" -> ["openai", "anthropic"]."""
        return [p.strip() for p in self.llm_fallback_providers.split(",") if p.strip()]

    @property
    def required_field_types(self) -> list[str]:
        return [f.strip().lower() for f in self.required_fields.split(",") if f.strip()]


settings = Settings()
