"""Utils package initialization."""
from app.utils.logger import get_logger, LayerLogger, set_trace_id, get_trace_id

__all__ = ["get_logger", "LayerLogger", "set_trace_id", "get_trace_id"]
