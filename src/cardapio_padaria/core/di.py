
"""Bootstrap do container de DI (kink) para backend e cliente de sincronização."""
from kink import di
from .settings import Settings, ClientSettings
from .logging import get_logger
from .db import create_session_factory, create_schema

def bootstrap_di(settings: Settings | None = None) -> Settings:
    """Registra Settings, logger e session factory do backend."""
    settings = settings or Settings()
    di[Settings] = settings
    di["logger"] = get_logger("api")
    di["session_factory"] = create_session_factory(settings.database_url)
    if settings.auto_create_schema:
        create_schema(di["session_factory"])
    return settings

def bootstrap_client_di(settings: ClientSettings | None = None) -> ClientSettings:
    """Registra ClientSettings; os componentes do cliente leem daqui quando não recebem explícito."""
    settings = settings or ClientSettings()
    di[ClientSettings] = settings
    return settings
