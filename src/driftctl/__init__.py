"""Command-line client for CtrlDrift pipelines."""
