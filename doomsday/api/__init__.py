"""FastAPI server: app, routes, middleware and dependencies"""
