"""Book metadata relay with verified cover discovery."""
