"""
Core domain layer: exception hierarchy and the ingestion engine.
"""
