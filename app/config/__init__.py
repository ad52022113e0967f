# =============================================================================
# Django Project Configuration Package
# =============================================================================
# Settings, root URLs and the ASGI/WSGI entry points. The ASGI application
# serves both the REST API and the chat WebSocket stream.
# =============================================================================
