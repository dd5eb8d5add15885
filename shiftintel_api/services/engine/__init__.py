# shiftintel_api/services/engine
"""
Workforce assignment intelligence: scoring, fatigue, shortage, staffing and
weekly insight aggregation over caller-supplied snapshots.
"""
from shiftintel_api.services.engine.config import EngineConfig

__all__ = ["EngineConfig"]
