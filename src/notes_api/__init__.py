"""
Session-gated note service.

Build the ASGI app with notes_api.main.create_app(), e.g.
`uvicorn notes_api.main:create_app --factory`.
"""
