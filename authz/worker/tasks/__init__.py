"""Worker tasks."""
