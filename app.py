"""Stack Warden — Entry Point.

Compose stack restarter with a log-triggered self-healing loop.

Run:
    python app.py
"""

import config
from stackwarden import create_app

application = create_app()

if __name__ == "__main__":
    application.run(
        host=config.HOST,
        port=config.PORT,
        debug=False,
        threaded=True,
    )
