from .loader import load_config, resolve_config_path
from .models import MeshConfig, Selector

__all__ = ["MeshConfig", "Selector", "load_config", "resolve_config_path"]
