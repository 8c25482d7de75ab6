"""Pure job types and lifecycle.  ZERO I/O."""
