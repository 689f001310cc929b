"""
App Factories
=============

Factories para construir componentes de la aplicación.
"""
from .sink_factory import SinkFactory, create_log_sink

__all__ = ['SinkFactory', 'create_log_sink']
