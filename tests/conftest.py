import pytest

from app import create_app
from config import TestingConfig
from models import db

API = '/api/v1'
PASSWORD = 'Passw0rd!'


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def register(client, username, password=PASSWORD):
    return client.post(f'{API}/register', json={'username': username, 'password': password})


def login(client, username, password=PASSWORD):
    return client.post(f'{API}/login', json={'username': username, 'password': password})


@pytest.fixture
def make_user(app):
    """註冊並登入,回傳帶著 session cookie 的 test client (每個使用者各一個)"""
    def _make_user(username):
        user_client = app.test_client()
        assert register(user_client, username).status_code == 201
        response = login(user_client, username)
        assert response.status_code == 200
        user_client.user = response.get_json()['user']
        user_client.token = response.get_json()['token']
        return user_client
    return _make_user


@pytest.fixture
def alice(make_user):
    return make_user('alice')


@pytest.fixture
def bob(make_user):
    return make_user('bob')


@pytest.fixture
def carol(make_user):
    return make_user('carol')


def create_project(user_client, name='P1', description='First project'):
    response = user_client.post(f'{API}/projects', json={'name': name, 'description': description})
    assert response.status_code == 201
    return response.get_json()


def add_member(manager_client, member_client, project_id):
    """邀請並接受,讓 member 成為專案成員"""
    response = manager_client.post(f'{API}/projects/{project_id}/invite',
                                   json={'usernames': [member_client.user['username']]})
    assert response.status_code == 200
    invitation_id = response.get_json()['invitations'][0]['id']
    response = member_client.post(f'{API}/invitations/{invitation_id}/respond',
                                  json={'response': 'accept'})
    assert response.status_code == 200
