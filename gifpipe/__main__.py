"""CLI entry point for python -m gifpipe"""
from gifpipe.cli.commands import app

if __name__ == "__main__":
    app()
