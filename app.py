from flask import Flask
from werkzeug.middleware.proxy_fix import ProxyFix
from config import Config

from models import db
from flask_migrate import Migrate
from security.throttle import LoginThrottle
from utils.logging_config import setup_logging


def create_app(config_overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    setup_logging(app.config.get("LOG_LEVEL", "INFO"), app.config.get("LOG_FORMAT", "console"))

    # Only trust X-Forwarded-For hops added by our own proxies
    proxies = app.config.get("PROXY_FIX_X_FOR", 0)
    if proxies:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=proxies)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Firewalls are validated here, before any request is served
    LoginThrottle(app)

    register_cli(app)

    return app

#-------------------------
import click
from flask.cli import AppGroup
from security.throttle import get_login_throttle

throttle_cli = AppGroup("login-throttle", help="Login throttle maintenance.")


@throttle_cli.command("cleanup")
@click.option("--watch-period", type=click.IntRange(min=1), default=None,
              help="Retention in seconds (defaults to the longest configured watch period).")
def cleanup(watch_period):
    """Delete login attempts older than the watch period."""
    deleted = get_login_throttle().cleanup(watch_period)
    click.echo(f"Deleted {deleted} login attempt(s)")


@throttle_cli.command("info")
@click.argument("firewall")
@click.argument("address")
@click.option("--identifier", default=None, help="Account identifier (username/email).")
def info(firewall, address, identifier):
    """Show throttle status for an address or account without recording anything."""
    result = get_login_throttle().attempt_info(firewall, address, identifier)
    for key, value in result.to_dict().items():
        click.echo(f"{key}: {value}")


def register_cli(app):
    app.cli.add_command(throttle_cli)

#-------------------------




if __name__ == "__main__":
    app = create_app()
    with app.app_context():
        db.create_all()
    app.run(host="127.0.0.1", port=5002)
