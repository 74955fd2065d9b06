"""Gunicorn target (``habitpulse.wsgi:app``); ``python -m habitpulse.wsgi`` for a dev server."""

import os

from habitpulse import create_app

app = create_app(os.environ.get("APP_ENV"))

if __name__ == "__main__":
    app.run(
        host=os.environ.get("HABITPULSE_HOST", "127.0.0.1"),
        port=int(os.environ.get("HABITPULSE_PORT", "5001")),
        debug=app.config.get("DEBUG", False),
    )
