"""
Integration tests against a live Redis server.

These tests need REDIS_HOST/REDIS_PORT to point at a disposable database and
are skipped when the server cannot be reached.
"""
