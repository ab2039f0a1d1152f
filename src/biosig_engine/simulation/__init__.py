"""
Simulation Module

Deterministic synthetic recordings for tests and demos.
"""

from .time_series import (
    add_spike,
    generate_pink_noise,
    generate_sine,
    generate_time_vector,
    make_test_buffer,
)

__all__ = [
    "add_spike",
    "generate_pink_noise",
    "generate_sine",
    "generate_time_vector",
    "make_test_buffer",
]
