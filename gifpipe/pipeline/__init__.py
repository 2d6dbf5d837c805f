"""Stage processors: thin shims over the external media tools."""
