"""Allow ``python -m webhook_backup``."""

from webhook_backup.cli import app

if __name__ == "__main__":
    app()
