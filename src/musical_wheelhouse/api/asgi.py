"""ASGI entrypoint for the Musical Wheelhouse API."""

from musical_wheelhouse.api.app import create_app
from musical_wheelhouse.containers import build_container

app = create_app(build_container())
