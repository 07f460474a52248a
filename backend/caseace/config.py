from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Application
    app_name: str = "CaseAce"
    app_version: str = "1.0.0"
    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"

    # Database
    database_url: str = "postgresql+asyncpg://caseace:caseace@db:5432/caseace"
    db_pool_size: int = 20
    db_max_overflow: int = 10

    # Auth
    secret_key: str = "CHANGE_ME"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60 * 24
    auth_cookie_name: str = "access_token"
    auth_cookie_secure: bool = False

    # MinIO
    minio_endpoint: str = "minio:9000"
    minio_root_user: str = "caseace"
    minio_root_password: str = "CHANGE_ME"
    minio_bucket: str = "caseace-documents"
    minio_use_ssl: bool = False
    max_upload_size_bytes: int = 10 * 1024 * 1024

    # SMTP (empty host logs messages instead of sending them)
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = "noreply@caseace.local"
    smtp_use_tls: bool = True
    portal_url: str = "http://localhost:3000/login"

    # Billing
    invoice_tax_rate: float = 0.10
    invoice_due_days: int = 30
    invoice_number_max_attempts: int = 10

    # Partner bootstrap
    first_partner_email: str = "partner@example.com"
    first_partner_password: str = "CHANGE_ME"

    # CORS
    backend_cors_origins: list[str] = ["http://localhost", "http://localhost:3000"]

    model_config = {"env_file": ".env", "case_sensitive": False}


settings = Settings()
