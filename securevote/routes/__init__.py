from securevote.routes.admin import register_admin_routes
from securevote.routes.auth import register_auth_routes
from securevote.routes.public import register_public_routes
from securevote.routes.votes import register_vote_routes


def register_routes(app):
    register_auth_routes(app)
    register_public_routes(app)
    register_vote_routes(app)
    register_admin_routes(app)
