"""
Logging Configuration Module
============================

Responsibility:
- One-time setup of the root logger for a pipeline run.
- Coloured console output (colorama) and a rotating UTF-8 file log.
"""

from .logging_config import LoggingConfigurator, ColoredFormatter

__all__ = ['LoggingConfigurator', 'ColoredFormatter']
