"""
Control Plane - MQTT Commands (QoS 1)
"""
from .plane import MQTTControlPlane
from .registry import CommandRegistry, CommandNotAvailableError

__all__ = ["MQTTControlPlane", "CommandRegistry", "CommandNotAvailableError"]
