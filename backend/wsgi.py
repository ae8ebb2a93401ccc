# Overview: WSGI entry point for flask CLI and production servers.

from restopos import create_app

app = create_app()
