"""Kopf operator that retrains and redeploys a model when data drift accumulates."""
