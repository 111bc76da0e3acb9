from __future__ import annotations

import logging

import click
from flask import Flask, jsonify
from werkzeug.security import generate_password_hash

from civil_registry.cemetery import cemetery_bp
from civil_registry.core.auth import auth_bp
from civil_registry.core.config import Config
from civil_registry.core.extensions import db, login_manager, migrate
from civil_registry.core.models import Role, User, seed_demo_data


def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object or Config)
    logging.basicConfig(level=app.config.get("LOG_LEVEL", "INFO"))
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    app.register_blueprint(auth_bp)
    app.register_blueprint(cemetery_bp)

    register_cli(app)
    register_routes(app)
    return app


def register_routes(app: Flask) -> None:
    @app.get("/health")
    def health():
        return jsonify({"status": "ok"})

    @app.errorhandler(401)
    def unauthorized(_error):
        return jsonify({"error": "Authentication required"}), 401

    @app.errorhandler(403)
    def forbidden(_error):
        return jsonify({"error": "Forbidden"}), 403

    @app.errorhandler(404)
    def not_found(_error):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(413)
    def too_large(_error):
        return jsonify({"error": "Upload too large"}), 413


def register_cli(app: Flask) -> None:
    @app.cli.command("seed-demo")
    @click.option("--reset", is_flag=True, help="Delete existing data before seed.")
    def seed_demo(reset: bool) -> None:
        """Seed demo citizen, employee and admin accounts."""
        if reset:
            db.drop_all()
            db.create_all()
        if not User.query.first():
            seed_demo_data(db.session)
            click.echo("Demo data seeded.")
        else:
            click.echo("Seed skipped: existing users found.")

    @app.cli.command("create-user")
    @click.option("--email", required=True)
    @click.option("--password", required=True)
    @click.option("--name", "full_name", required=True)
    @click.option(
        "--role",
        type=click.Choice([role.value for role in Role], case_sensitive=False),
        default=Role.USER.value,
        show_default=True,
    )
    def create_user(email: str, password: str, full_name: str, role: str) -> None:
        """Create a portal account."""
        email = email.strip().lower()
        if User.query.filter_by(email=email).first():
            raise click.ClickException(f"User {email} already exists")
        db.session.add(
            User(
                email=email,
                full_name=full_name.strip(),
                password_hash=generate_password_hash(password),
                role=Role(role.upper()),
            )
        )
        db.session.commit()
        click.echo(f"Created {role.upper()} user {email}.")


@login_manager.user_loader
def load_user(user_id: str) -> User | None:
    return db.session.get(User, int(user_id))


@login_manager.unauthorized_handler
def unauthorized_json():
    return jsonify({"error": "Authentication required"}), 401
