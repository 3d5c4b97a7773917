"""NB Studio — FastAPI REST API layer.

This package contains the FastAPI application, the authentication routes,
and the Pydantic request/response models.

Modules
-------
main
    FastAPI application with all generation routes and the ``main()`` CLI
    entry point.
auth
    Google OAuth sign-in, session routes, and the ``require_session``
    dependency.
models
    Pydantic models for API request and response validation.
"""
