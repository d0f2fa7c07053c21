"""
Blueprint registration for the learning engine's JSON API.
"""

from __future__ import annotations


def register_blueprints(app):
    from blueprints.catalog import bp as catalog_bp
    from blueprints.submissions import bp as submissions_bp
    from blueprints.progress import bp as progress_bp

    app.register_blueprint(catalog_bp)
    app.register_blueprint(submissions_bp)
    app.register_blueprint(progress_bp)
