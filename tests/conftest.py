import datetime
from types import SimpleNamespace

import pytest
from flask import Flask, request
from modelapi import DB, ModelAPI, ModelAPIRestApi, ModelResource, api_attr


class User(DB.Model):
    __tablename__ = "users"
    id = DB.Column(DB.Integer, primary_key=True)
    name = DB.Column(DB.String, default="")
    admin = DB.Column(DB.Boolean, default=False)
    time_zone = DB.Column(DB.String)


class Category(DB.Model):
    __tablename__ = "categories"
    id = DB.Column(DB.Integer, primary_key=True)
    name = DB.Column(DB.String, default="")


def _upper(value):
    return str(value).upper()


class Product(DB.Model):
    __tablename__ = "products"
    id = DB.Column(DB.Integer, primary_key=True)
    name = DB.Column(DB.String, default="", info={"ext_name": "title"})
    code = DB.Column(DB.String, info={"parse": _upper})
    price = DB.Column(DB.Float, info={"default_sort_order": "desc"})
    created_on = DB.Column(DB.Date)
    secret = DB.Column(DB.String, info={"expose": False})
    internal_note = DB.Column(DB.String, info={"filterable": False, "updatable": False})
    user_id = DB.Column(DB.Integer, DB.ForeignKey("users.id"))
    category_id = DB.Column(DB.Integer, DB.ForeignKey("categories.id"))
    deleted = DB.Column(DB.Boolean, default=False, nullable=False)
    category = DB.relationship(Category)
    user = DB.relationship(User)

    @api_attr.with_options(sortable=True)
    def label(self):
        return f"{self.name} ({self.price})"


class Note(DB.Model):
    """
    Owned through the `user` association, there's no user_id column
    """

    __tablename__ = "notes"
    id = DB.Column(DB.Integer, primary_key=True)
    text = DB.Column(DB.String, default="")
    author_id = DB.Column(DB.Integer, DB.ForeignKey("users.id"))
    user = DB.relationship(User)


class Widget(DB.Model):
    __tablename__ = "widgets"
    id = DB.Column(DB.Integer, primary_key=True)
    name = DB.Column(DB.String, default="")
    type = DB.Column(DB.String)
    size = DB.Column(DB.Integer)
    __mapper_args__ = {"polymorphic_on": type, "polymorphic_identity": "widget"}


class WidgetA(Widget):
    __mapper_args__ = {"polymorphic_identity": "widget_a"}


class WidgetB(Widget):
    __mapper_args__ = {"polymorphic_identity": "widget_b"}


class Record(DB.Model):
    """
    Soft deleted with an integer column
    """

    __tablename__ = "records"
    id = DB.Column(DB.Integer, primary_key=True)
    title = DB.Column(DB.String, default="")
    deleted = DB.Column(DB.Integer, default=0, nullable=False)


class UserResource(ModelResource):
    """
    The principal is passed in the X-User-Id header
    """

    def current_user(self):
        user_id = request.headers.get("X-User-Id")
        if user_id is None:
            return None
        return DB.session.get(User, int(user_id))


class OpenResource(UserResource):
    user_filter = False


MODELS = SimpleNamespace(
    User=User, Category=Category, Product=Product, Note=Note, Widget=Widget, WidgetA=WidgetA, WidgetB=WidgetB, Record=Record
)


@pytest.fixture
def models() -> SimpleNamespace:
    return MODELS


@pytest.fixture
def app():
    app = Flask("modelapi_tests")
    app.config.update(SQLALCHEMY_DATABASE_URI="sqlite://", TESTING=True)
    DB.init_app(app)
    ModelAPI(app, DB)
    api = ModelAPIRestApi(app)
    api.expose_model(Product, resource_class=UserResource)
    api.expose_model(Note, resource_class=UserResource)
    api.expose_model(Widget, resource_class=OpenResource)
    api.expose_model(Record, resource_class=OpenResource)
    api.expose_model(Category, resource_class=OpenResource, admin_only=True)
    with app.app_context():
        DB.create_all()
        yield app
        DB.session.remove()
        DB.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def data(app) -> SimpleNamespace:
    alice = User(id=1, name="alice")
    bob = User(id=2, name="bob")
    root = User(id=3, name="root", admin=True)
    toys = Category(id=1, name="toys")
    tools = Category(id=2, name="tools")
    products = [
        Product(id=1, name="ball", price=5, user=alice, category=toys, created_on=datetime.date(2024, 1, 10)),
        Product(id=2, name="kite", price=25, user=alice, category=toys, created_on=datetime.date(2024, 2, 10)),
        Product(id=3, name="hammer", price=15, user=alice, category=tools, created_on=datetime.date(2024, 3, 10)),
        Product(id=4, name="saw", price=30, user=bob, category=tools, created_on=datetime.date(2024, 4, 10)),
        Product(id=5, name="old kite", price=1, user=alice, category=toys, deleted=True),
    ]
    notes = [Note(id=1, text="alice note", user=alice), Note(id=2, text="bob note", user=bob)]
    records = [Record(id=1, title="kept"), Record(id=2, title="gone", deleted=1)]
    DB.session.add_all([alice, bob, root, toys, tools, *products, *notes, *records])
    DB.session.commit()
    return SimpleNamespace(alice=alice, bob=bob, root=root, toys=toys, tools=tools, products=products)
