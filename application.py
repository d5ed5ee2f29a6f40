"""
ASGI entry point for the ShieldMatch FastAPI application.
Process managers look for the module-level 'application' object.
"""

from shieldmatch.main import app

application = app

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(application, host="0.0.0.0", port=8000)
