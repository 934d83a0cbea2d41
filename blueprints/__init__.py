"""
Blueprint registration for Learnify.

All blueprints are registered without URL prefixes; each route carries its
full path.
"""

from __future__ import annotations


def register_blueprints(app):
    from blueprints.core import bp as core_bp
    from blueprints.lessons import bp as lessons_bp
    from blueprints.quizzes import bp as quizzes_bp
    from blueprints.gamification import bp as gamification_bp
    from blueprints.learning_paths import bp as learning_paths_bp
    from blueprints.analytics import bp as analytics_bp
    from blueprints.ai import bp as ai_bp
    from blueprints.sel import bp as sel_bp
    from blueprints.profile import bp as profile_bp
    from blueprints.community import bp as community_bp
    from blueprints.labs import bp as labs_bp
    from blueprints.parent import bp as parent_bp
    from blueprints.admin import bp as admin_bp

    app.register_blueprint(core_bp)
    app.register_blueprint(lessons_bp)
    app.register_blueprint(quizzes_bp)
    app.register_blueprint(gamification_bp)
    app.register_blueprint(learning_paths_bp)
    app.register_blueprint(analytics_bp)
    app.register_blueprint(ai_bp)
    app.register_blueprint(sel_bp)
    app.register_blueprint(profile_bp)
    app.register_blueprint(community_bp)
    app.register_blueprint(labs_bp)
    app.register_blueprint(parent_bp)
    app.register_blueprint(admin_bp)
