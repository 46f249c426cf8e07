"""Allow ``python -m studio_pulse``."""

from studio_pulse.cli import app

if __name__ == "__main__":
    app()
