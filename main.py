"""WSGI / command line entry point for the OE matcher."""

from src.main import app, cli  # noqa: F401

if __name__ == "__main__":
    cli()
