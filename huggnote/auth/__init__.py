"""Access token issuing and FastAPI auth dependencies."""
