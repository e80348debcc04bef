"""``python -m provisioning`` entry point."""

from provisioning.cli.app import app

if __name__ == "__main__":
    app()
