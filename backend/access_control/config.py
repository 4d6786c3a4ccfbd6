"""
Configurações centralizadas do motor de controle de acesso usando Pydantic Settings.

Este módulo carrega e valida as variáveis de ambiente do arquivo .env
e fornece uma interface type-safe para acessá-las em toda a aplicação.
"""

from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import List

# Caminho base do projeto
BASE_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE = BASE_DIR / "backend" / ".env"


class Settings(BaseSettings):
    """Configurações da aplicação."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_name: str = "Amicus Access Control"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = "development"
    allowed_origins: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    # PostgreSQL
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "amicus"
    postgres_user: str = "postgres"
    postgres_password: str = "postgres"
    postgres_pool_size: int = 20
    postgres_max_overflow: int = 10

    # URL explícita (ex.: sqlite+aiosqlite:///:memory: nos testes)
    database_url: str | None = None

    @property
    def postgres_url(self) -> str:
        """URL de conexão assíncrona para SQLAlchemy."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}@"
            f"{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Controle de acesso
    organization_param_name: str = "organizationId"
    audit_enabled: bool = True
    superadmin_cross_org_methods: List[str] = ["GET", "POST", "PUT", "PATCH"]
    default_trial_days: int = 14
    usage_report_default_days: int = 30

    # Observability
    metrics_enabled: bool = True
    log_level: str = "INFO"


@lru_cache()
def get_settings() -> Settings:
    """
    Retorna instância cached de Settings.

    Usa lru_cache para garantir que as configurações sejam carregadas
    apenas uma vez e reutilizadas em toda a aplicação.

    Returns:
        Settings: Instância de configurações validadas
    """
    return Settings()
