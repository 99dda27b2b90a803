"""Video transcoder service."""
