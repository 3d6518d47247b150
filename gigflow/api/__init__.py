"""HTTP and WebSocket surface, persistence models and application wiring."""
