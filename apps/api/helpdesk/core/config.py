from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite+aiosqlite:///./helpdesk.db"
    # DB bootstrap (dev only)
    auto_db_bootstrap: bool = False

    # Auth
    jwt_secret: str = "dev-secret"
    jwt_expires_min: int = 120

    # Mail delivery
    smtp_host: str = ""
    smtp_port: int = 25
    smtp_from: str = ""
    mail_sender_name: str = "Helpdesk"
    app_base_url: str = "http://localhost:3000"

    # Share links
    share_min_ttl_days: int = 1
    share_max_ttl_days: int = 30
    share_token_bytes: int = 32
    share_issue_attempts: int = 5

    # Change watcher
    watcher_enabled: bool = True
    mutation_feed: str = "memory"  # memory | postgres
    mutation_channel: str = "ticket_mutations"
    watcher_queue_size: int = 1000
    feed_reconnect_seconds: float = 5.0

    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173"
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
