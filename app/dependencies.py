from fastapi import Request

from .services.notifications import NotificationDispatcher
from .services.registry import DecolectaClient
from .services.storage import ProofStorage


# Colaboradores creados una sola vez en el lifespan (ver main.py)
def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher

def get_registry(request: Request) -> DecolectaClient:
    return request.app.state.registry

def get_storage(request: Request) -> ProofStorage:
    return request.app.state.storage
