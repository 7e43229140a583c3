from conftest import API, create_project


def test_notifications_newest_first(alice, bob):
    first = create_project(alice, 'First')
    second = create_project(alice, 'Second')
    alice.post(f'{API}/projects/{first["id"]}/invite', json={'usernames': ['bob']})
    alice.post(f'{API}/projects/{second["id"]}/invite', json={'usernames': ['bob']})

    data = bob.get(f'{API}/notifications').get_json()
    assert data['total'] == 2
    assert [n['projectId'] for n in data['notifications']] == [second['id'], first['id']]


def test_delete_own_notification(alice, bob):
    project = create_project(alice)
    alice.post(f'{API}/projects/{project["id"]}/invite', json={'usernames': ['bob']})
    notification = bob.get(f'{API}/notifications').get_json()['notifications'][0]

    # 別人的通知當作不存在
    response = alice.delete(f'{API}/notifications/{notification["id"]}')
    assert response.status_code == 404

    response = bob.delete(f'{API}/notifications/{notification["id"]}')
    assert response.status_code == 200
    assert bob.get(f'{API}/notifications').get_json()['total'] == 0


def test_delete_missing_notification(alice):
    assert alice.delete(f'{API}/notifications/12345').status_code == 404


def test_notifications_require_login(client):
    assert client.get(f'{API}/notifications').status_code == 401
