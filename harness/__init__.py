"""
Harness Module

Configuration, suite running and CLI around the simulator core.

This module provides:
- YAML-based configuration loading
- Constraint-aware suite runner with performance history
- CLI for running scripts and suites
"""

__version__ = "0.1.0"
