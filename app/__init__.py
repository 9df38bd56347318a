"""
FastAPI Application Package

This package contains the main FastAPI application and routing logic.
It serves as the entry point for the backend API, providing REST snapshots and
the WebSocket viewing session over spot market data from several exchanges.
"""
