"""Application layer: FastAPI app, admin routes and HTTP cache middleware."""
