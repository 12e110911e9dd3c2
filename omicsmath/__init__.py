"""
Omicsmath package for the omics exploration dashboard.

This is the statistical compute engine of the dashboard: numeric
primitives, PCA, correlation matrices, level-of-detail sampling and the
background job protocol that runs the heavy computations.
"""

__version__ = '0.1.0'

from omicsmath.components.config import Config, ConfigManager
from omicsmath.jobs import JobClient, JobHandle
