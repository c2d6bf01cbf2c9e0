# Studio API Database Package
from studio_api.database.connection import SessionLocal, get_db
from studio_api.database.tenant_connection import (
    get_tenant_session_factory,
    get_tenant_engine,
    set_current_tenant,
    get_current_tenant,
)

__all__ = [
    "SessionLocal",
    "get_db",
    "get_tenant_session_factory",
    "get_tenant_engine",
    "set_current_tenant",
    "get_current_tenant",
]
