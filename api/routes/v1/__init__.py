"""v1 routers, mounted under /api/v1 by api/main.py."""
