"""
Publishers
==========

Publishers especializados para formatear mensajes MQTT.

Responsabilidad:
- Conocen estructura de mensajes (lógica de negocio)
- Formatean datos para publicación
- NO conocen detalles de MQTT (eso es del DataPlane)
"""
from .prediction import PredictionPublisher
from .timeline import TimelinePublisher

__all__ = ['PredictionPublisher', 'TimelinePublisher']
