"""
FastAPI Application Package

This package contains the FastAPI application for the candle relay:
health/info routes and the downstream WebSocket endpoint.
"""
