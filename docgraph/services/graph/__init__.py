"""Knowledge graph processing."""
