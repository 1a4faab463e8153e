import tempfile

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central settings object.
    Deployments provide env vars; locally you can use backend/.env.
    """
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Credentials
    GOOGLE_CLOUD_KEY: str = ""  # service account JSON document (not a path)
    GEMINI_API_KEY: str = ""

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"
    UPLOAD_DIR: str = tempfile.gettempdir()

    # Speech-to-Text (fixed per deployment, never per request)
    SPEECH_ENCODING: str = "WEBM_OPUS"
    SPEECH_LANGUAGE_CODE: str = "es-CO"

    # Product catalog
    CATALOG_URL: str = "https://trista-backend.vercel.app/products"
    CATALOG_TIMEOUT_SECONDS: float = 30

    # Gemini
    GEMINI_MODEL: str = "gemini-flash-lite-latest"
    GEMINI_TEMPERATURE: float = 0.1
    GEMINI_MAX_OUTPUT_TOKENS: int = 1000
    GEMINI_TIMEOUT_SECONDS: float = 60
    FILTER_UNKNOWN_PRODUCTS: bool = False

    # Versioning
    APP_VERSION: str = "0.1.0"
    BUILD_ID: str = "dev"


# ✅ MUST EXIST: other modules import this
settings = Settings()
