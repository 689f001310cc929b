"""
Moodline Controller con MQTT Control y Data Plane
=================================================

Control Plane: Controla el loop de frames (pause/resume/stop/reset/set_config) vía MQTT
Data Plane: Publica predicciones estabilizadas vía MQTT
"""
import argparse
import signal
import sys
import time
import logging
from pathlib import Path
from threading import Event
from typing import Any, Callable, Dict, List, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from ..config import DEFAULT_CONFIG_PATH, EnvironmentSettings, MoodlineConfig, SmoothingSettings
from ..control import MQTTControlPlane
from ..inference.observations import FaceFrame
from ..logging import (
    log_error_with_context,
    log_pipeline_metrics,
    log_smoothing_stats,
    setup_logging,
)
from .builder import PipelineBuilder

# Logger (será configurado en main() con config values)
logger = logging.getLogger(__name__)


# ============================================================================
# CONTROLLER
# ============================================================================
class MoodlineController:
    """
    Controlador del pipeline de emociones con MQTT control y data plane.

    Responsabilidad: Orquestación y lifecycle management
    - Setup de componentes (delega construcción a Builder)
    - Loop de frames con pause/shutdown explícitos (chequeados una vez por frame)
    - Signal handling (Ctrl+C)
    - Cleanup de recursos
    """

    def __init__(self, config: MoodlineConfig, source_override: Optional[str] = None):
        self.config = config
        self.source_override = source_override
        self.builder = PipelineBuilder(config)

        # Componentes (serán creados por builder en setup)
        self.pipeline = None
        self.source = None
        self.sinks: List[Callable] = []
        self.control_plane: Optional[MQTTControlPlane] = None
        self.data_plane = None

        # Lifecycle
        self.shutdown_event = Event()
        self.pause_event = Event()
        self.is_running = False

        # Métricas del loop
        self.frames_processed = 0
        self._window_start = time.perf_counter()
        self._window_frames = 0
        self._window_latency = 0.0

    @property
    def is_paused(self) -> bool:
        return self.pause_event.is_set()

    def setup(self) -> bool:
        """
        Inicializa pipeline, fuente y conexiones MQTT.

        Returns:
            bool: True si setup exitoso, False si falla
        """
        logger.info("🚀 Inicializando Moodline...")

        # ====================================================================
        # 1. Build Pipeline (DELEGADO A BUILDER)
        # ====================================================================
        try:
            self.pipeline = self.builder.build_pipeline()
            self.source = self.builder.build_source(self.source_override)
        except (ValueError, FileNotFoundError) as e:
            log_error_with_context(
                logger,
                message="❌ Error construyendo pipeline",
                exception=e,
                component="controller",
                event="setup_failed",
            )
            return False

        # ====================================================================
        # 2. Configurar Data Plane (publicador de predicciones)
        # ====================================================================
        self.data_plane = self.builder.build_data_plane()
        if self.data_plane is not None:
            logger.info("📡 Configurando Data Plane...")
            if not self.data_plane.connect(timeout=10):
                logger.error("❌ No se pudo conectar Data Plane")
                return False

        # ====================================================================
        # 3. Build Sinks (DELEGADO A BUILDER)
        # ====================================================================
        self.sinks = self.builder.build_sinks(self.data_plane)

        # ====================================================================
        # 4. Configurar Control Plane (receptor de comandos)
        # ====================================================================
        if self.config.mqtt.enabled:
            logger.info("🎮 Configurando Control Plane...")
            mqtt_config = self.config.mqtt
            self.control_plane = MQTTControlPlane(
                broker_host=mqtt_config.broker.host,
                broker_port=mqtt_config.broker.port,
                command_topic=mqtt_config.topics.control_commands,
                status_topic=mqtt_config.topics.control_status,
                username=mqtt_config.broker.username,
                password=mqtt_config.broker.password,
                qos=mqtt_config.qos.control,
            )
            self._setup_control_callbacks()

            if not self.control_plane.connect(timeout=10):
                logger.error("❌ No se pudo conectar Control Plane")
                return False

        self.is_running = True
        logger.info("✅ Setup completado")
        return True

    def _setup_control_callbacks(self):
        """
        Registra comandos en CommandRegistry del Control Plane.

        stabilization_stats solo si smoothing.mode='temporal'.
        """
        registry = self.control_plane.command_registry

        registry.register('pause', self._handle_pause, "Pausa el procesamiento")
        registry.register('resume', self._handle_resume, "Reanuda el procesamiento")
        registry.register('stop', self._handle_stop, "Detiene y finaliza el servicio")
        registry.register('status', self._handle_status, "Consulta estado actual")
        registry.register('reset', self._handle_reset, "Resetea estabilizadores y timeline")
        registry.register(
            'set_config',
            self._handle_set_config,
            "Aplica nueva configuración de smoothing",
            accepts_payload=True,
        )
        registry.register('timeline', self._handle_timeline, "Publica snapshot del timeline")

        if self.config.smoothing.mode != 'none':
            registry.register(
                'stabilization_stats',
                self._handle_stabilization_stats,
                "Estadísticas de estabilización"
            )
            logger.info("✅ stabilization_stats command registered")

    def _publish_status(self, status: str, details: Optional[Dict[str, Any]] = None):
        if self.control_plane is not None:
            self.control_plane.publish_status(status, details)

    # ========================================================================
    # Command handlers
    # ========================================================================

    def _handle_stop(self):
        """Callback para comando STOP - detiene y finaliza el programa"""
        logger.info("⏹️ Comando STOP recibido")
        self.is_running = False
        self._publish_status("stopped")
        logger.info("🛑 Finalizando servicio...")
        self.shutdown_event.set()

    def _handle_pause(self):
        """Callback para comando PAUSE - pausa temporalmente el procesamiento"""
        logger.info("⏸️ Comando PAUSE recibido")
        if not self.is_running:
            logger.warning("⚠️ Pipeline no está corriendo, no se puede pausar")
            return
        self.pause_event.set()
        self._publish_status("paused")
        logger.info("✅ Pipeline pausado (usa RESUME para continuar)")

    def _handle_resume(self):
        """Callback para comando RESUME - reanuda después de PAUSE"""
        logger.info("▶️ Comando RESUME recibido")
        if not self.is_running:
            logger.warning("⚠️ Pipeline no está corriendo, no se puede resumir")
            return
        self.pause_event.clear()
        self._publish_status("running")
        logger.info("✅ Pipeline resumido")

    def _handle_status(self):
        """Callback para comando STATUS - publica estado actual"""
        logger.info("📋 Comando STATUS recibido")
        if not self.is_running:
            status = "stopped"
        elif self.is_paused:
            status = "paused"
        else:
            status = "running"
        self._publish_status(status, {"frames_processed": self.frames_processed})

    def _handle_reset(self):
        """Callback para comando RESET - vuelve al estado de bootstrap"""
        logger.info("🔄 Comando RESET recibido")
        self.pipeline.reset()
        self._publish_status("reset")

    def _handle_set_config(self, payload: Dict[str, Any]):
        """
        Callback para comando SET_CONFIG.

        Payload: {"command": "set_config", "config": {campos de SmoothingSettings}}
        Campos ausentes conservan su valor actual. El modo no cambia en caliente.
        Config inválida se loguea y se rechaza sin tocar el estado.
        """
        logger.info("⚙️ Comando SET_CONFIG recibido")
        updates = payload.get('config')
        if not isinstance(updates, dict) or not updates:
            logger.warning(
                "⚠️ set_config sin objeto 'config', ignorado",
                extra={"component": "controller", "event": "set_config_rejected"}
            )
            self._publish_status("config_rejected", {"reason": "missing 'config' object"})
            return

        current = self.config.smoothing
        try:
            new_settings = SmoothingSettings(**{**current.model_dump(), **updates})
        except ValidationError as e:
            logger.warning(
                "⚠️ set_config inválido, configuración sin cambios",
                extra={
                    "component": "controller",
                    "event": "set_config_rejected",
                    "errors": [
                        {"field": ".".join(str(loc) for loc in err['loc']), "msg": err['msg']}
                        for err in e.errors()
                    ],
                }
            )
            self._publish_status("config_rejected", {"reason": "validation_error"})
            return

        if new_settings.mode != current.mode:
            logger.warning(
                "⚠️ smoothing.mode no se puede cambiar en caliente",
                extra={
                    "component": "controller",
                    "event": "set_config_rejected",
                    "current_mode": current.mode,
                    "requested_mode": new_settings.mode,
                }
            )
            self._publish_status("config_rejected", {"reason": "mode change requires restart"})
            return

        if new_settings.neutral_index >= len(self.config.emotions.labels):
            logger.warning(
                "⚠️ neutral_index fuera de rango, configuración sin cambios",
                extra={
                    "component": "controller",
                    "event": "set_config_rejected",
                    "neutral_index": new_settings.neutral_index,
                }
            )
            self._publish_status("config_rejected", {"reason": "neutral_index out of range"})
            return

        self.pipeline.update_config(new_settings.to_smoothing_config())
        self.config = self.config.model_copy(update={'smoothing': new_settings})
        logger.info(
            "✅ Smoothing config actualizada",
            extra={
                "component": "controller",
                "event": "set_config_applied",
                "config": new_settings.model_dump(),
            }
        )
        self._publish_status("config_updated", {"config": new_settings.model_dump()})

    def _handle_timeline(self):
        """Callback para comando TIMELINE - publica snapshot del timeline"""
        logger.info("📈 Comando TIMELINE recibido")
        snapshot = self.pipeline.timeline.snapshot()
        if self.data_plane is None:
            logger.info(
                "Timeline snapshot",
                extra={"component": "controller", "event": "timeline_snapshot", "length": len(snapshot)}
            )
            return
        self.data_plane.publish_timeline(snapshot)

    def _handle_stabilization_stats(self):
        """Callback para comando STABILIZATION_STATS - loguea estadísticas"""
        logger.info("📊 Comando STABILIZATION_STATS recibido")
        log_smoothing_stats(logger, self.pipeline.get_stats(), component="controller")

    # ========================================================================
    # Frame loop
    # ========================================================================

    def process_frame(self, frame: FaceFrame):
        """Procesa un frame y lo entrega a todos los sinks"""
        started = time.perf_counter()
        predictions = self.pipeline.process(frame)

        for sink in self.sinks:
            try:
                sink(predictions, frame)
            except Exception as e:
                log_error_with_context(
                    logger,
                    message="❌ Error en sink",
                    exception=e,
                    component="controller",
                    event="sink_error",
                    sink_name=getattr(sink, '__name__', repr(sink)),
                )

        self.frames_processed += 1
        self._window_frames += 1
        self._window_latency += time.perf_counter() - started

        if self._window_frames >= self.config.pipeline.metrics_interval:
            self._log_metrics()

        return predictions

    def _log_metrics(self):
        elapsed = time.perf_counter() - self._window_start
        fps = self._window_frames / elapsed if elapsed > 0 else 0.0
        latency_ms = (self._window_latency / self._window_frames) * 1000.0 if self._window_frames else None
        log_pipeline_metrics(
            logger,
            fps=fps,
            latency_ms=latency_ms,
            frames_processed=self.frames_processed,
            additional_metrics={"tracking_mode": self.pipeline.tracking_mode},
        )
        self._window_start = time.perf_counter()
        self._window_frames = 0
        self._window_latency = 0.0

    def _wait_while_paused(self) -> bool:
        """Bloquea mientras esté pausado. Returns False si llegó shutdown."""
        while self.pause_event.is_set() and not self.shutdown_event.is_set():
            self.shutdown_event.wait(timeout=0.1)
        return not self.shutdown_event.is_set()

    def run_loop(self):
        """Loop de frames: pause/shutdown chequeados una vez por frame, throttle a max_fps"""
        min_interval = 1.0 / self.config.pipeline.max_fps
        next_frame_at = time.perf_counter()

        for frame in self.source:
            if self.shutdown_event.is_set():
                break
            if not self._wait_while_paused():
                break

            delay = next_frame_at - time.perf_counter()
            if delay > 0 and self.shutdown_event.wait(timeout=delay):
                break
            next_frame_at = max(next_frame_at + min_interval, time.perf_counter())

            self.process_frame(frame)

        if not self.shutdown_event.is_set():
            logger.info(
                "🏁 Replay finalizada",
                extra={
                    "component": "controller",
                    "event": "source_exhausted",
                    "frames_processed": self.frames_processed,
                }
            )
            self._publish_status("finished")

    def run(self):
        """Ejecuta el servicio"""
        if not self.setup():
            logger.error("❌ Setup falló")
            self.cleanup()
            return False

        logger.info("=" * 70)
        logger.info("🎬 Moodline activo y corriendo")
        logger.info("=" * 70)
        if self.control_plane is not None:
            logger.info(f"📡 Control Topic: {self.config.mqtt.topics.control_commands}")
            logger.info(f"📊 Data Topic: {self.config.mqtt.topics.data}")
            logger.info("💡 Comandos MQTT disponibles:")
            for command, description in sorted(self.control_plane.command_registry.get_help().items()):
                logger.info(f'   {command.upper()}: {{"command": "{command}"}} - {description}')
        logger.info("⌨️  Presiona Ctrl+C para salir")

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        self._publish_status("running")
        try:
            self.run_loop()
        except KeyboardInterrupt:
            logger.info("⚠️ Interrupción forzada...")
            self.shutdown_event.set()
        finally:
            self.cleanup()
        return True

    def _signal_handler(self, signum, frame):
        """Handler para señales (Ctrl+C)"""
        logger.info("⚠️ Señal de terminación recibida...")
        self.shutdown_event.set()

    def cleanup(self):
        """Limpia recursos al finalizar"""
        logger.info("🧹 Limpiando recursos...")
        self.is_running = False

        if self.pipeline is not None:
            log_smoothing_stats(logger, self.pipeline.get_stats(), component="controller")

        if self.control_plane:
            try:
                self.control_plane.disconnect()
                logger.info("✅ Control Plane desconectado")
            except Exception as e:
                logger.error(f"❌ Error desconectando Control Plane: {e}")

        if self.data_plane:
            try:
                stats = self.data_plane.get_stats()
                logger.info(f"📊 Data Plane stats: {stats}")
                self.data_plane.disconnect()
                logger.info("✅ Data Plane desconectado")
            except Exception as e:
                logger.error(f"❌ Error desconectando Data Plane: {e}")

        logger.info("👋 Hasta luego!")


# ============================================================================
# MAIN
# ============================================================================
def load_config(config_path: str) -> MoodlineConfig:
    """Carga config desde YAML, o defaults (+ entorno) si el archivo no existe"""
    if Path(config_path).exists():
        config = MoodlineConfig.from_yaml(config_path)
        print(f"✅ Config loaded and validated from {config_path}")
        return config

    print(f"⚠️  Config file not found ({config_path}), using defaults")
    return MoodlineConfig().with_environment()


def main(argv=None):
    """Punto de entrada principal"""
    load_dotenv()

    parser = argparse.ArgumentParser(
        description="Moodline: estabilización temporal de emociones faciales con MQTT"
    )
    parser.add_argument(
        "--config",
        default=None,
        help=f"Path al config.yaml (default: $MOODLINE_CONFIG o {DEFAULT_CONFIG_PATH})"
    )
    parser.add_argument(
        "--source",
        default=None,
        help="Replay JSONL (override de pipeline.source)"
    )
    args = parser.parse_args(argv)

    config_path = args.config or EnvironmentSettings().moodline_config or DEFAULT_CONFIG_PATH

    try:
        config = load_config(config_path)
    except ValidationError as e:
        # Fail fast con mensaje claro
        print("❌ Invalid configuration:")
        for error in e.errors():
            field = " -> ".join(str(loc) for loc in error['loc'])
            print(f"   • {field}: {error['msg']}")
        print(f"\nPlease fix {config_path} and try again.")
        sys.exit(1)
    except Exception as e:
        print(f"❌ Error loading config: {e}")
        sys.exit(1)

    setup_logging(
        level=config.logging.level,
        indent=config.logging.json_indent,
        add_fields={"service": "moodline"},
        log_file=config.logging.file,
        max_bytes=config.logging.max_bytes,
        backup_count=config.logging.backup_count,
    )

    global logger
    logger = logging.getLogger(__name__)
    logger.info("🔧 Moodline starting...")

    # Reducir verbosidad de paho-mqtt
    logging.getLogger('paho').setLevel(getattr(logging, config.logging.paho_level))

    controller = MoodlineController(config, source_override=args.source)

    try:
        ok = controller.run()
    except Exception as e:
        logger.error(f"❌ Error fatal: {e}", exc_info=True)
        sys.exit(1)

    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
