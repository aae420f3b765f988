"""Query-time event stream: wire format, decoder and client."""
