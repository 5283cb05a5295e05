"""
FastAPI routers grouped by area (auth, membership, admin).

Each module exposes an APIRouter included by theraway.app.create_app. Routers
stay thin: parse the request, resolve the principal, call a service.
"""
