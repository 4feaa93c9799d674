"""Application layer: service facades used by drivers."""
