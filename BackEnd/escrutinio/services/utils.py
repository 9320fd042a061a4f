import uuid
from datetime import datetime, timezone


def ahora() -> datetime:
    """
    Hora actual en UTC sin tzinfo.

    Todas las columnas DateTime del esquema guardan UTC ingenuo para que
    SQLite y PostgreSQL comparen igual los vencimientos de bloqueo.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def nuevo_uuid() -> str:
    return str(uuid.uuid4())
