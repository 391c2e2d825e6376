"""
Core modules for Usage Monitor.

This package contains the usage-accounting engine: session segmentation,
weighted token accounting, burn rate estimation, plan detection and
exhaustion prediction.
"""
