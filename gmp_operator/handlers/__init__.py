"""Handler modules for Kopf events."""
from .startup import configure_operator, start_controllers, stop_controllers
from .watches import register_handlers

__all__ = ["register_handlers", "configure_operator", "start_controllers", "stop_controllers"]
