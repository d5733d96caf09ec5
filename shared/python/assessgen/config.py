"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Common service settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    log_level: str = "INFO"
    otel_console_export: bool = False

    llm_provider: str = "gemini"
    gemini_api_key: str | None = None
    gemini_model: str = "gemini-2.0-flash"
    gemini_temperature: float = 0.4
    mistral_api_key: str | None = None
    mistral_base_url: str = "https://api.mistral.ai/v1"
    mistral_model: str = "mistral-small-latest"
    llm_timeout_seconds: int = 60
    max_prompt_chars: int = Field(default=30000, ge=1000)

    assemblyai_api_key: str | None = None
    assemblyai_base_url: str = "https://api.assemblyai.com/v2"
    transcription_poll_interval_seconds: float = 5.0
    transcription_queued_poll_interval_seconds: float = 10.0
    transcription_max_wait_seconds: float = 600.0

    ocr_backend: str = "ocr_space"
    ocr_space_api_key: str | None = None
    ocr_space_url: str = "https://api.ocr.space/parse/image"
    ocr_language: str = "eng"
    ocr_engine: int = 2
    ocr_timeout_seconds: int = 120
    tesseract_language: str = "eng"
    ocr_max_pages: int = 20
    ocr_min_text_chars: int = 100

    transcript_service_url: str | None = "https://product-answer.vercel.app"
    transcript_service_timeout_seconds: float = 15.0
    enable_caption_lookup: bool = True
    caption_languages: str = "en,en-US,en-GB"

    youtube_proxy_urls: str = ""
    youtube_cookies_file: str | None = None
    extraction_attempt_timeout_seconds: float = 15.0
    download_timeout_seconds: float = 60.0

    youtube_request_timeout_seconds: float = 300.0
    media_request_timeout_seconds: float = 300.0
    document_request_timeout_seconds: float = 120.0

    temp_dir: str = "/tmp/assessgen"
    max_media_upload_bytes: int = 100 * 1024 * 1024
    max_document_upload_bytes: int = 25 * 1024 * 1024
    max_pdf_upload_bytes: int = 10 * 1024 * 1024
    min_transcript_chars: int = 50
    ffmpeg_binary: str = "ffmpeg"

    max_question_count: int = Field(default=50, ge=1)

    allowed_origins: str = "*"
    rate_limit_per_minute: int = Field(default=60, ge=1)

    @property
    def proxy_urls(self) -> list[str]:
        return [item.strip() for item in self.youtube_proxy_urls.split(",") if item.strip()]

    @property
    def caption_language_list(self) -> list[str]:
        return [item.strip() for item in self.caption_languages.split(",") if item.strip()]

    @property
    def cors_origins(self) -> list[str]:
        return [item.strip() for item in self.allowed_origins.split(",") if item.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()
