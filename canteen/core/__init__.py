"""
Core module initialization.
Exports configuration.
"""

from canteen.core.config import get_settings, Settings, EnvironmentMode, RealtimeBackend

__all__ = ["get_settings", "Settings", "EnvironmentMode", "RealtimeBackend"]
