"""HTTP and WebSocket surface of the Quire service."""
