"""FastAPI application exposing the batch pipeline."""
