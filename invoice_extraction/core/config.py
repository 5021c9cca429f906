from pydantic import Field
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    app_name: str = Field("lt-invoice-extraction", alias="APP_NAME")
    app_env: str = Field("dev", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # Azure Document Intelligence
    az_di_endpoint: str | None = Field(default=None, alias="AZ_DI_ENDPOINT")
    az_di_api_key: str | None = Field(default=None, alias="AZ_DI_API_KEY")
    az_di_model: str = Field("prebuilt-layout", alias="AZ_DI_MODEL")

    # Template store (empty = in-memory)
    template_db_path: str = Field("", alias="TEMPLATE_DB_PATH")

    # CORS allowed origins (comma-separated list for production deployment)
    cors_origins: str = Field("http://localhost:3000,http://127.0.0.1:3000", alias="CORS_ORIGINS")

    # Template learning
    template_outlier_threshold: float = Field(0.15, alias="TEMPLATE_OUTLIER_THRESHOLD")
    template_min_match_quality: float = Field(0.5, alias="TEMPLATE_MIN_MATCH_QUALITY")

    # Invoice checks
    check_max_amount: float = Field(1_000_000.0, alias="CHECK_MAX_AMOUNT")
    check_max_future_months: int = Field(2, alias="CHECK_MAX_FUTURE_MONTHS")
    check_vat_tolerance: float = Field(0.03, alias="CHECK_VAT_TOLERANCE")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

settings = Settings()
