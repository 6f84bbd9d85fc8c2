"""HTTP and realtime API."""
