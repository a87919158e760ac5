"""Click command groups mounted on the top-level ``hostprov`` CLI."""
