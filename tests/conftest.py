import pytest
from app import create_app
from config import BlogConfig


@pytest.fixture
def config():
    return BlogConfig(database_url='sqlite://', log_level='WARNING')


@pytest.fixture
def app(config):
    app = create_app(config)
    app.config['TESTING'] = True
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def service(app):
    with app.app_context():
        yield app.extensions['post_service']


@pytest.fixture
def csrf_token(client):
    '''Token the server handed out on the first visit.'''
    client.get('/')
    cookie = client.get_cookie('csrf')
    assert cookie is not None
    return cookie.value
