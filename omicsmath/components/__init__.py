"""
System components for omicsmath.
"""

from omicsmath.components.config import Config, ConfigManager
