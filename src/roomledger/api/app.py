"""ASGI entrypoint: uvicorn roomledger.api.app:app"""

from roomledger.api.factory import create_app

app = create_app()
