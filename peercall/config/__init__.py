"""설정 관리 모듈"""

from .config_loader import ConfigLoader, load_config
from .models import Config

__all__ = ["ConfigLoader", "load_config", "Config"]
