"""Church events (services, programmes); volunteers are assigned per event."""
