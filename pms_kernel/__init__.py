"""
PMS Kernel

The deterministic core of the performance-management platform:
- Generic workflow/status state machine over any workflow record
- Exact-decimal scoring and grading
- Atomic sequence counters for human-readable reference codes
"""

__version__ = "0.1.0"
