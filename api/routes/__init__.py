"""
Bridge API Routes Package.

This package contains all FastAPI route handlers organized by domain.

Example:
    from api.routes import people

    app.include_router(people.router)
"""
