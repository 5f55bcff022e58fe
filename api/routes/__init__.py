"""Versioned HTTP routers."""
