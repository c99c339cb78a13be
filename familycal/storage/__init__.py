"""Storage collaborators: protocols plus in-memory and file-backed implementations."""
