"""Request-independent path, content-type and delivery logic."""
