
"""Configurações Pydantic Settings para servidor e cliente de sincronização."""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
    """Configurações do backend (API Flask). Carrega de env e .env.

    Todas as credenciais devem vir via env. Nunca hardcode.
    """
    model_config = SettingsConfigDict(env_file=".env", env_prefix="CARDAPIO_", case_sensitive=False, extra="ignore")

    # Flask
    flask_debug: bool = Field(default=False)
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # DB (Turso/libsql, Postgres do Supabase ou SQLite local)
    database_url: str = Field(default="sqlite:///cardapio.db", description="URL SQLAlchemy, ex: postgresql+psycopg://user:pass@db:5432/app")
    auto_create_schema: bool = Field(default=True, description="Cria tabelas no boot (dev/testes). Em produção use alembic.")

    # Auth
    secret_key: str = Field(..., description="Segredo para assinar o token de sessão admin")
    admin_password_hash: str = Field(default="", description="SHA-256 (hex) da senha admin")
    cookie_name: str = Field(default="admin-token")
    cookie_secure: bool = Field(default=True, description="Cookie só via HTTPS")
    token_max_age_s: int = Field(default=8 * 60 * 60)

    # Rate limit (por IP)
    login_rate_limit: str = Field(default="5 per minute")
    admin_rate_limit: str = Field(default="30 per minute")

    # Imagens
    max_inline_image_kb: int = Field(default=1500)
    max_upload_bytes: int = Field(default=1 * 1024 * 1024)
    upload_dir: str = Field(default="uploads")

    # Seed inicial do cardápio
    seed_path: str = Field(default="config/seed_menu.json")


class ClientSettings(BaseSettings):
    """Configurações do cliente de sincronização (camada que roda junto da UI)."""
    model_config = SettingsConfigDict(env_file=".env", env_prefix="CARDAPIO_CLIENT_", case_sensitive=False, extra="ignore")

    base_url: str = Field(default="http://localhost:8000")
    sync_endpoint: str = Field(default="/api/sync")

    # Remote store
    timeout_s: float = Field(default=5.0)
    push_timeout_s: float = Field(default=30.0, description="Imagens inline grandes em conexões lentas")
    max_retries: int = Field(default=3)
    initial_retry_delay_s: float = Field(default=1.0)
    read_cache_ttl_s: float = Field(default=15.0)

    # Hook de sincronização
    poll_interval_s: float = Field(default=30.0)
    debounce_s: float = Field(default=0.2)
    post_write_refresh_delay_s: float = Field(default=0.5)
    refresh_retries: int = Field(default=2)
    refresh_retry_base_s: float = Field(default=1.0)

    # Cache local e canal entre abas
    cache_dir: str = Field(default=".cardapio-cache")
    broadcast_channel: str = Field(default="cardapio-sync")
