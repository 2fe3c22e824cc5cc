from . import auth, cart, catalog, images, orders, payment, reviews, users, wishlist


def register_blueprints(app):
    for module in (auth, images, cart, orders, payment, reviews, users, wishlist, catalog):
        app.register_blueprint(module.bp)
