from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    # Issuer sandbox
    issuer_api_url: str = Field("http://127.0.0.1:9001", alias="ISSUER_API_URL")
    issuer_access_token: str = Field("", alias="ISSUER_ACCESS_TOKEN")
    vc_template_code: str = Field("", alias="VC_TEMPLATE_CODE")
    issuer_qrcode_path: str = Field("/api/qrcode/data", alias="ISSUER_QRCODE_PATH")

    # Verifier sandbox
    verifier_api_url: str = Field("http://127.0.0.1:9002", alias="VERIFIER_API_URL")
    verifier_access_token: str = Field("", alias="VERIFIER_ACCESS_TOKEN")
    vp_ref: str = Field("", alias="VP_REF")
    verifier_qrcode_path: str = Field("/api/qrcode/data", alias="VERIFIER_QRCODE_PATH")
    verifier_result_path: str = Field(
        "/api/vp/result/{transaction_id}", alias="VERIFIER_RESULT_PATH"
    )

    # Seconds; applies to connect and read on every upstream call
    upstream_timeout: float = Field(10.0, alias="UPSTREAM_TIMEOUT")

    # Allow-list
    whitelist_path: str = Field("data/whitelist.json", alias="WHITELIST_PATH")
    sweep_interval_seconds: float = Field(3600.0, alias="SWEEP_INTERVAL_SECONDS")
    max_validity_days: int = Field(30, alias="MAX_VALIDITY_DAYS")
    pass_id_prefix: str = Field("ACC", alias="PASS_ID_PREFIX")

    cors_origins: list[str] = Field(["*"], alias="CORS_ORIGINS")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )


settings = Settings()
