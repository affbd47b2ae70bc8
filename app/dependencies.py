"""Accessors for the process-wide handles created by the app factories."""
from fastapi import Request

from app.config import Settings
from app.middleware.auth import TokenVerifier
from app.services.destination import DestinationResolver
from app.services.storage import StorageBackend


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_storage(request: Request) -> StorageBackend:
    return request.app.state.storage


def get_resolver(request: Request) -> DestinationResolver:
    return request.app.state.resolver


def get_token_verifier(request: Request) -> TokenVerifier:
    return request.app.state.token_verifier
