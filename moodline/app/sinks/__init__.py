from .registry import SinkRegistry

__all__ = ['SinkRegistry']
