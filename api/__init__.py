"""api/ -- FastAPI application, HTTP models, and v1 routers.

Layer rule: api/ is the composition root. It may import from every other
package; nothing imports from api/.
"""
