"""Stack Warden — compose stack restarter, log watchdog and download proxy.

Flask application factory lives here so the package is directly
importable: ``from stackwarden import create_app``.
"""

import logging

from flask import Flask
from flask_cors import CORS

import config
from stackwarden.services.command_runner import CommandRunner
from stackwarden.services.log_monitor import LogMonitor
from stackwarden.services.orchestrator import RestartOrchestrator
from stackwarden.services.qbittorrent import QbittorrentClient
from stackwarden.services.topology import load_topology


def create_app(start_monitor=True):
    """Create and configure the Flask application.

    Args:
        start_monitor: If True, start the background log-monitor thread.
            Set to False during testing.
    """
    application = Flask(__name__)

    # CORS — the dashboard may be served from another origin.
    CORS(application)

    # Logging
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    topology = load_topology()
    runner = CommandRunner(cwd=topology.working_dir, timeout=config.COMMAND_TIMEOUT)

    # One orchestrator shared by the API and the monitor.
    orchestrator = RestartOrchestrator(runner, topology)
    monitor = LogMonitor(runner, orchestrator)
    application.config["ORCHESTRATOR"] = orchestrator
    application.config["LOG_MONITOR"] = monitor
    application.config["QBIT_CLIENT"] = QbittorrentClient()

    if start_monitor:
        monitor.start()

    # Register blueprints
    from stackwarden.routes.health import health_bp
    from stackwarden.routes.stack import stack_bp
    from stackwarden.routes.torrents import torrents_bp

    application.register_blueprint(health_bp)
    application.register_blueprint(stack_bp)
    application.register_blueprint(torrents_bp)

    return application
