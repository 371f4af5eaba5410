"""
mapbench: parameterized benchmark suite for sequence-read mappers.

Drives floxer and minimap across parameter sweeps, records their outputs and
resource usage, and hands the collected artifacts to external analysis tools.
"""

__version__ = "0.1.0"
