import click
from flask import Flask
from werkzeug.security import generate_password_hash

from tagshelf.api import api_bp
from tagshelf.auth import auth_bp
from tagshelf.config import Config
from tagshelf.errors import register_error_handlers
from tagshelf.extensions import db, login_manager, migrate
from tagshelf.services.settings import load_wordpress_settings
from tagshelf.services.wordpress import client_from_config, sync_newest_tagged


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    app.register_blueprint(auth_bp)
    app.register_blueprint(api_bp)
    register_error_handlers(app)

    @app.cli.command("init-db")
    def init_db_command():
        db.create_all()
        print("Initialized Tagshelf database.")

    @app.cli.command("hash-password")
    @click.password_option()
    def hash_password_command(password):
        print(generate_password_hash(password))

    @app.cli.command("wp-sync")
    @click.option("--tag", required=True, help="Publish the newest bookmark with this tag.")
    def wp_sync_command(tag):
        with client_from_config(load_wordpress_settings()) as client:
            bookmark, outcome = sync_newest_tagged(tag, client)
        if bookmark is None:
            print(f"No bookmarks found for tag '{tag}'.")
        elif outcome is None:
            print(f"No new bookmark (last id {bookmark.id}).")
        elif outcome.already_exists:
            print(f"Bookmark {bookmark.id} already exists in WordPress.")
        else:
            print(f"Synced bookmark {bookmark.id} as WordPress post {outcome.post_id}.")

    with app.app_context():
        db.create_all()

    return app
