"""
IO Module

CSV import and export of SignalBuffers.
"""

from .csv_io import read_csv, write_csv

__all__ = ["read_csv", "write_csv"]
