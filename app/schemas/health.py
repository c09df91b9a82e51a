"""Health check payload."""

from datetime import datetime
from typing import Literal

from app.schemas.common import CamelModel


class HealthData(CamelModel):
    """Liveness plus database reachability; timestamp is the server's current UTC time."""

    status: Literal["ok"] = "ok"
    environment: str
    database: Literal["connected", "disconnected"]
    timestamp: datetime
