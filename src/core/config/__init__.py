"""
Configuration subsystem for Questline.

Static vs Tunable Configuration
-------------------------------
**Static (Config):**
- Loaded from environment variables at startup (``.env`` supported)
- Includes: store backend, database URL and pool sizes, Redis settings
- Changes require a restart

**Tunable (ConfigManager):**
- Loaded from YAML files under ``config/``
- Includes: level threshold, cache TTLs, board sizes, quest catalog
- Supports in-process overrides via ``ConfigManager.set``

Usage
-----
```python
from src.core.config import Config, ConfigManager

backend = Config.STORE_BACKEND
threshold = ConfigManager.get("progression.level_xp_threshold", 300)
```
"""

from src.core.config.config import Config, Environment, StoreBackend
from src.core.config.manager import ConfigManager

__all__ = [
    "Config",
    "ConfigManager",
    "Environment",
    "StoreBackend",
]
