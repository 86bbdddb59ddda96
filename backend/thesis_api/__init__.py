"""Backend package for the thesis project catalogue.

The FastAPI application lives in `main`; services, repositories and
models hold the behaviour and are documented in their own modules.
"""
