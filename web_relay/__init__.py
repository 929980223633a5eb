"""Forward HTTP/HTTPS relay service."""
