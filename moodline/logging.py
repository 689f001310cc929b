"""
Structured Logging Infrastructure
==================================

Un record JSON por línea (stdout o archivo rotado). Cada record lleva level,
logger, timestamp, el trace_id del comando MQTT en curso y los campos globales
del servicio. Los emojis quedan dentro de "message".

    setup_logging(level="INFO", add_fields={"service": "moodline"})

    with trace_context(generate_trace_id("cmd-reset")):
        logger.info("🔄 Reset", extra={"component": "control_plane"})
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from contextvars import ContextVar
from contextlib import contextmanager
from typing import Optional, Dict, Any
import uuid

from pythonjsonlogger.json import JsonFormatter

# ============================================================================
# Trace Context (propagación de trace_id)
# ============================================================================

trace_id_var: ContextVar[Optional[str]] = ContextVar('trace_id', default=None)


def get_trace_id() -> Optional[str]:
    """trace_id activo, None fuera de trace_context()"""
    return trace_id_var.get()


def generate_trace_id(prefix: str = "trace") -> str:
    """{prefix}-{8 hex}, ej. cmd-set_config-1a2b3c4d"""
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


@contextmanager
def trace_context(trace_id: Optional[str] = None):
    """
    Activa trace_id para todos los logs emitidos dentro del bloque.

    El control plane abre uno por mensaje, así los logs del handler
    (set_config, reset, ...) quedan correlacionados con el comando.
    """
    if trace_id is None:
        trace_id = generate_trace_id()

    token = trace_id_var.set(trace_id)
    try:
        yield trace_id
    finally:
        trace_id_var.reset(token)


# ============================================================================
# Logger Setup
# ============================================================================

class MoodlineJsonFormatter(JsonFormatter):
    """
    levelname → level, name → logger, más trace_id activo y global_fields
    (ej. {"service": "moodline"}) sin pisar campos del record.
    """

    def __init__(self, *args, global_fields: Optional[Dict[str, Any]] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self._global_fields = dict(global_fields or {})

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        if 'levelname' in log_record:
            log_record['level'] = log_record.pop('levelname')

        if 'name' in log_record:
            log_record['logger'] = log_record.pop('name')

        current_trace_id = get_trace_id()
        if current_trace_id and 'trace_id' not in log_record:
            log_record['trace_id'] = current_trace_id

        for key, value in self._global_fields.items():
            if key not in log_record:
                log_record[key] = value


def setup_logging(
    level: str = "INFO",
    indent: Optional[int] = None,
    add_fields: Optional[Dict[str, Any]] = None,
    log_file: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """
    Reemplaza los handlers del root logger por uno solo con MoodlineJsonFormatter.

    log_file=None escribe a stdout. Con log_file se crean los directorios
    faltantes y se usa RotatingFileHandler(max_bytes, backup_count).
    """
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        handler = RotatingFileHandler(
            filename=str(log_path),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8'
        )

        print(
            f"📄 Logging to file: {log_file} (max: {max_bytes//1024//1024}MB, backups: {backup_count})",
            file=sys.stderr
        )
    else:
        handler = logging.StreamHandler(sys.stdout)

    formatter = MoodlineJsonFormatter(
        '%(timestamp)s %(levelname)s %(name)s %(message)s',
        timestamp=True,
        json_indent=indent,
        global_fields=add_fields,
    )
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)
        existing.close()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper()))


# ============================================================================
# Helpers por componente
# ============================================================================

def log_mqtt_command(
    logger: logging.Logger,
    command: str,
    topic: str,
    payload: Optional[Dict[str, Any]] = None,
    trace_id: Optional[str] = None
) -> None:
    """Comando recibido en el control plane (payload completo si viene, ej. set_config)"""
    extra = {
        "component": "control_plane",
        "event": "command_received",
        "command": command,
        "mqtt_topic": topic,
        "trace_id": trace_id or get_trace_id(),
    }
    if payload:
        extra["payload"] = payload

    logger.info(f"📥 Comando recibido: {command}", extra=extra)


def log_mqtt_publish(
    logger: logging.Logger,
    topic: str,
    qos: int,
    payload_size: int,
    success: bool = True,
    error_code: Optional[int] = None,
    num_predictions: Optional[int] = None,
    component: str = "data_plane",
) -> None:
    """
    Resultado de un publish del data plane.

    success=True → DEBUG (un mensaje por frame), success=False → WARNING
    con el rc de paho en mqtt_error_code.
    """
    extra: Dict[str, Any] = {
        "component": component,
        "event": "message_published" if success else "publish_failed",
        "mqtt_topic": topic,
        "qos": qos,
        "payload_size_bytes": payload_size,
        "success": success,
    }
    if error_code is not None:
        extra["mqtt_error_code"] = error_code
    if num_predictions is not None:
        extra["num_predictions"] = num_predictions

    if success:
        logger.debug(f"📤 Mensaje publicado a {topic}", extra=extra)
    else:
        logger.warning(f"⚠️ Error publicando a {topic}", extra=extra)


def log_pipeline_metrics(
    logger: logging.Logger,
    fps: float,
    latency_ms: Optional[float] = None,
    frames_processed: Optional[int] = None,
    additional_metrics: Optional[Dict[str, Any]] = None
) -> None:
    """Métricas periódicas del frame loop, agrupadas bajo "metrics" """
    metrics: Dict[str, Any] = {"fps": round(fps, 2)}
    if latency_ms is not None:
        metrics["latency_ms"] = round(latency_ms, 2)
    if frames_processed is not None:
        metrics["frames_processed"] = frames_processed
    metrics.update(additional_metrics or {})

    logger.info(
        f"📊 Pipeline metrics: {fps:.2f} FPS",
        extra={"component": "emotion_pipeline", "event": "pipeline_metrics", "metrics": metrics}
    )


def log_smoothing_stats(
    logger: logging.Logger,
    stats: Dict[str, Any],
    component: str = "stabilization",
) -> None:
    """Snapshot de registry.get_stats() bajo la clave "stabilization" """
    logger.info(
        f"📈 Smoothing stats: {stats.get('active_stabilizers', 0)} stabilizers activos, "
        f"{stats.get('frames_processed', 0)} frames procesados",
        extra={"component": component, "event": "smoothing_stats", "stabilization": stats}
    )


def log_error_with_context(
    logger: logging.Logger,
    message: str,
    exception: Optional[Exception] = None,
    component: str = "unknown",
    event: Optional[str] = None,
    trace_id: Optional[str] = None,
    **kwargs: Any
) -> None:
    """
    ERROR con component/event/trace_id y, si hay excepción, error_type,
    error_message y traceback. kwargs se agregan tal cual (topic, sink, ...).
    """
    extra: Dict[str, Any] = {
        "component": component,
        "trace_id": trace_id or get_trace_id(),
    }
    if event:
        extra["event"] = event
    if exception is not None:
        extra["error_type"] = type(exception).__name__
        extra["error_message"] = str(exception)
    extra.update(kwargs)

    if exception is not None:
        logger.error(f"{message}: {exception}", extra=extra, exc_info=True)
    else:
        logger.error(message, extra=extra)


__all__ = [
    # Setup
    "setup_logging",
    "MoodlineJsonFormatter",
    # Trace context
    "trace_context",
    "get_trace_id",
    "generate_trace_id",
    # Helpers
    "log_mqtt_command",
    "log_mqtt_publish",
    "log_pipeline_metrics",
    "log_smoothing_stats",
    "log_error_with_context",
]
