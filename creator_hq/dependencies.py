"""Request-scoped accessors for the client handles owned by the app lifespan"""

import httpx
from fastapi import Request
from sqlalchemy.orm import sessionmaker

from .config import Settings


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_session_factory(request: Request) -> sessionmaker:
    return request.app.state.session_factory
