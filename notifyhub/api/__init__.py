"""FastAPI application exposing the notifications facade."""
