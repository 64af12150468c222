"""
Configuration module for the call bridge.

Key components:
- constants: realtime event names, outbound message types and defaults.
- logging_config: the application logger with console and rotating file output.
- settings: ``BridgeSettings``, the environment-driven configuration passed to
  the bridge, tool registry and collaborators at startup.

Usage examples:
```python
from callbridge.config.logging_config import configure_logging
from callbridge.config.settings import BridgeSettings

logger = configure_logging()
settings = BridgeSettings.from_env()
settings.validate()
```
"""
