"""
Command Registry
================

Registry explícito de comandos MQTT disponibles.

Problema resuelto:
- Comandos condicionales (stabilization_stats solo si mode='temporal')
- Comandos con payload (set_config recibe la nueva configuración)
- Errores confusos cuando comando no está registrado

Solución:
- Registry explícito: solo registras comandos disponibles
- Validación temprana: error si comando no existe
- Introspección: listar comandos disponibles
"""
from typing import Any, Callable, Dict, Optional, Set
import logging

logger = logging.getLogger(__name__)


class CommandNotAvailableError(Exception):
    """Comando no está disponible en el modo actual."""
    pass


class CommandRegistry:
    """
    Registry de comandos MQTT.

    Usage:
        registry = CommandRegistry()

        # Comandos sin payload
        registry.register('pause', controller.pause, "Pausa el procesamiento")

        # Comandos con payload (reciben el dict completo del mensaje)
        registry.register('set_config', controller.set_config,
                          "Actualiza smoothing", accepts_payload=True)

        try:
            registry.execute('set_config', {"config": {"ema_alpha": 0.3}})
        except CommandNotAvailableError as e:
            logger.warning(str(e))
    """

    def __init__(self):
        """Inicializa registry vacío."""
        self._commands: Dict[str, Callable] = {}
        self._descriptions: Dict[str, str] = {}
        self._accepts_payload: Set[str] = set()

    def register(
        self,
        command: str,
        handler: Callable,
        description: str = "",
        accepts_payload: bool = False,
    ):
        """
        Registra un comando.

        Args:
            command: Nombre del comando (ej: 'pause', 'set_config')
            handler: Función a ejecutar
            description: Descripción del comando para help/logging
            accepts_payload: Si True, handler recibe el payload del mensaje

        Note:
            Si comando ya existe, se sobrescribe con warning.
        """
        if command in self._commands:
            logger.warning(f"⚠️ Comando '{command}' ya registrado, sobrescribiendo")

        self._commands[command] = handler
        self._descriptions[command] = description
        if accepts_payload:
            self._accepts_payload.add(command)
        else:
            self._accepts_payload.discard(command)
        logger.debug(f"📝 Comando registrado: '{command}' - {description}")

    def execute(self, command: str, payload: Optional[Dict[str, Any]] = None):
        """
        Ejecuta un comando.

        Args:
            command: Nombre del comando
            payload: Mensaje completo (solo se pasa a handlers con accepts_payload)

        Returns:
            Resultado del handler (o None)

        Raises:
            CommandNotAvailableError: Si comando no está registrado
        """
        if command not in self._commands:
            available = ', '.join(sorted(self.available_commands))
            raise CommandNotAvailableError(
                f"Command '{command}' not available. "
                f"Available commands: {available}"
            )

        handler = self._commands[command]
        logger.debug(f"⚙️ Ejecutando comando: '{command}'")
        if command in self._accepts_payload:
            return handler(payload or {})
        return handler()

    def is_available(self, command: str) -> bool:
        """
        Verifica si comando está disponible.

        Args:
            command: Nombre del comando

        Returns:
            True si comando está registrado
        """
        return command in self._commands

    @property
    def available_commands(self) -> Set[str]:
        """
        Set de comandos disponibles.

        Returns:
            Set de nombres de comandos registrados
        """
        return set(self._commands.keys())

    def get_help(self) -> Dict[str, str]:
        """
        Retorna diccionario de comandos con descripciones.

        Returns:
            Dict[comando, descripción]
        """
        return dict(self._descriptions)

    def __repr__(self) -> str:
        """String representation para debugging."""
        cmds = ', '.join(sorted(self.available_commands))
        return f"CommandRegistry({len(self._commands)} commands: {cmds})"
