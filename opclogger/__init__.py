"""
OPC UA Data Logger

Samples a fixed set of OPC UA points on a fixed cadence into hourly CSV
files while a second, faster task keeps the session alive.
"""

__version__ = "1.0.0"
