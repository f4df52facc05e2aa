# linestamp/routes/helpers.py
from fastapi import Request

from linestamp.core.config import Settings
from linestamp.core.errors import ServiceUnavailableError
from linestamp.services.storage_gcp import StampStore


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> StampStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise ServiceUnavailableError("Database service is not configured")
    return store


def get_generator(request: Request):
    return request.app.state.generator


def get_submitter(request: Request):
    return request.app.state.submitter
