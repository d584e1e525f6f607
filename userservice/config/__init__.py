"""Configuration package.

Note: Do not import and construct settings at package import time to keep
test collection free from environment requirements. Call
``userservice.config.settings.build_settings`` where needed.
"""

__all__: list[str] = []
