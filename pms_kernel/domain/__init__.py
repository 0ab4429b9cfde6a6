"""Pure domain value objects for the PMS kernel.  ZERO I/O."""
