"""HTTP and realtime surface (FastAPI)."""
