"""
Configuration module for the voice agent relay and client.

This module provides centralized configuration management for the entire application,
including constants, logging setup, and environment-based configuration.

Key components:
- constants: Defines application-wide constants used across modules, including
  message types, audio protocol rates and block sizes, and close codes.
- logging_config: Provides a consistent logging infrastructure with support for
  console and file-based logging with rotation capabilities.
- settings: Builds the RelayConfig once at process start from environment
  variables (optionally loaded from a .env file).

Usage examples:
```python
from voice_agent.config.constants import LOGGER_NAME, INPUT_SAMPLE_RATE
from voice_agent.config.logging_config import configure_logging
from voice_agent.config.settings import RelayConfig, load_env_file

load_env_file()
logger = configure_logging()
config = RelayConfig.from_env()
logger.info(f"Allowed origins: {config.allowed_origins}")
```
"""
