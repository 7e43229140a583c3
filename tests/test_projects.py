from conftest import API, create_project, add_member


def usernames(users):
    return [user['username'] for user in users]


def test_create_project(alice):
    project = create_project(alice)

    assert project['name'] == 'P1'
    assert project['managedBy']['username'] == 'alice'
    assert usernames(project['members']) == ['alice']
    assert project['caseStudy'] is None
    assert project['projectStatutes'] is None
    assert project['tasks'] == []
    assert project['ramMatrix'] == [['', 'alice']]


def test_create_project_requires_name(alice):
    response = alice.post(f'{API}/projects', json={'description': 'no name'})
    assert response.status_code == 400
    assert 'name' in response.get_json()['details']


def test_list_projects_managed_or_joined(alice, bob):
    own = create_project(alice, 'Mine')
    joined = create_project(bob, 'Theirs')
    create_project(bob, 'Not mine')
    add_member(bob, alice, joined['id'])

    response = alice.get(f'{API}/projects')
    assert response.status_code == 200

    data = response.get_json()
    assert data['total'] == 2
    assert [p['id'] for p in data['projects']] == [own['id'], joined['id']]


def test_get_project_requires_membership(alice, bob):
    project = create_project(alice)

    assert bob.get(f'{API}/projects/{project["id"]}').status_code == 403
    assert alice.get(f'{API}/projects/9999').status_code == 404


def test_update_name_and_description(alice):
    project = create_project(alice)

    response = alice.patch(f'{API}/projects/{project["id"]}',
                           json={'name': 'Renamed', 'description': 'New'})
    assert response.status_code == 200
    assert response.get_json()['name'] == 'Renamed'
    assert response.get_json()['description'] == 'New'


def test_case_study_version_must_increase(alice):
    project = create_project(alice)
    url = f'{API}/projects/{project["id"]}'

    response = alice.put(url, json={'caseStudy': {'content': 'v1', 'version': '1.0.0'}})
    assert response.status_code == 200
    case_study = response.get_json()['caseStudy']
    assert case_study['version'] == '1.0.0'
    assert case_study['modifiedBy'] == 'alice'

    response = alice.put(url, json={'caseStudy': {'content': 'same', 'version': '1.0.0'}})
    assert response.status_code == 400
    assert response.get_json()['error'] == 'version_error'

    response = alice.put(url, json={'caseStudy': {'content': 'older', 'version': '0.9.9'}})
    assert response.status_code == 400

    response = alice.put(url, json={'caseStudy': {'content': 'v2', 'version': '1.10.0'}})
    assert response.status_code == 200
    assert response.get_json()['caseStudy']['content'] == 'v2'


def test_malformed_version(alice):
    project = create_project(alice)

    response = alice.put(f'{API}/projects/{project["id"]}',
                         json={'caseStudy': {'content': 'x', 'version': 'first'}})
    assert response.status_code == 400
    assert response.get_json()['error'] == 'validation_error'


def test_project_statutes(alice):
    project = create_project(alice)
    sections = [
        {'title': 'Goals', 'content': 'Ship it'},
        {'title': 'Rules', 'content': 'Be nice'}
    ]

    response = alice.patch(f'{API}/projects/{project["id"]}',
                           json={'projectStatutes': {'content': sections, 'version': '0.1.0'}})
    assert response.status_code == 200
    statutes = response.get_json()['projectStatutes']
    assert statutes['content'] == sections
    assert statutes['version'] == '0.1.0'


def test_failed_patch_writes_nothing(alice):
    project = create_project(alice)

    response = alice.patch(f'{API}/projects/{project["id"]}', json={
        'name': 'Should not be saved',
        'caseStudy': {'content': 'x', 'version': '0.0.0'}
    })
    assert response.status_code == 400

    current = alice.get(f'{API}/projects/{project["id"]}').get_json()
    assert current['name'] == 'P1'
    assert current['caseStudy'] is None


def test_transfer_leadership(alice, bob):
    project = create_project(alice)
    add_member(alice, bob, project['id'])

    response = alice.patch(f'{API}/projects/{project["id"]}',
                           json={'managedById': bob.user['id']})
    assert response.status_code == 200

    data = response.get_json()
    assert data['managedById'] == bob.user['id']
    assert usernames(data['members']) == ['bob', 'alice']
    assert data['ramMatrix'][0] == ['', 'bob', 'alice']

    notifications = bob.get(f'{API}/notifications').get_json()['notifications']
    assert notifications[0]['content'] == 'alice made you the manager of the project "P1".'

    # alice 不再是 manager
    response = alice.delete(f'{API}/projects/{project["id"]}')
    assert response.status_code == 403


def test_only_manager_can_transfer_leadership(alice, bob):
    project = create_project(alice)
    add_member(alice, bob, project['id'])

    response = bob.patch(f'{API}/projects/{project["id"]}',
                         json={'managedById': bob.user['id']})
    assert response.status_code == 403


def test_new_manager_must_be_member(alice, bob):
    project = create_project(alice)

    response = alice.patch(f'{API}/projects/{project["id"]}',
                           json={'managedById': bob.user['id']})
    assert response.status_code == 400


def test_ram_matrix_update_changes_task_roles(alice, bob):
    project = create_project(alice)
    add_member(alice, bob, project['id'])
    url = f'{API}/projects/{project["id"]}'

    task = alice.post(f'{url}/tasks', json={'name': 'T1'}).get_json()
    matrix = alice.get(url).get_json()['ramMatrix']
    assert matrix == [['', 'alice', 'bob'], ['T1', 'O', 'P']]

    response = alice.put(url, json={'ramMatrix': [['', 'alice', 'bob'], ['T1', 'O', 'O']]})
    assert response.status_code == 200
    assert response.get_json()['ramMatrix'] == [['', 'alice', 'bob'], ['T1', 'P', 'O']]

    task = alice.get(f'{url}/tasks/{task["id"]}').get_json()
    assert task['assigneeId'] == bob.user['id']
    assert usernames(task['informed']) == ['alice']


def test_ram_matrix_rejects_unknown_cell(alice):
    project = create_project(alice)
    url = f'{API}/projects/{project["id"]}'
    alice.post(f'{url}/tasks', json={'name': 'T1'})

    response = alice.put(url, json={'ramMatrix': [['', 'alice'], ['T1', 'X']]})
    assert response.status_code == 400


def test_delete_project(alice, bob, carol):
    project = create_project(alice)
    add_member(alice, bob, project['id'])
    url = f'{API}/projects/{project["id"]}'
    alice.post(f'{url}/tasks', json={'name': 'T1'})
    alice.post(f'{url}/invite', json={'usernames': ['carol']})

    assert bob.delete(url).status_code == 403

    response = alice.delete(url)
    assert response.status_code == 204

    assert alice.get(url).status_code == 404
    assert alice.get(f'{API}/projects').get_json()['total'] == 0
    # 待處理的邀請通知一起刪除
    assert carol.get(f'{API}/notifications').get_json()['total'] == 0


def test_members_endpoint(alice, bob):
    project = create_project(alice)
    add_member(alice, bob, project['id'])

    data = alice.get(f'{API}/projects/{project["id"]}/members').get_json()
    assert data['total'] == 2
    assert data['members'][0]['isManager'] is True
    assert data['members'][1] == {'id': bob.user['id'], 'username': 'bob', 'isManager': False}


def test_manager_removes_member(alice, bob):
    project = create_project(alice)
    add_member(alice, bob, project['id'])
    url = f'{API}/projects/{project["id"]}'
    task = bob.post(f'{url}/tasks', json={'name': 'Bob task'}).get_json()

    response = alice.delete(f'{url}/members/{bob.user["id"]}')
    assert response.status_code == 200
    assert usernames(response.get_json()['members']) == ['alice']

    task = alice.get(f'{url}/tasks/{task["id"]}').get_json()
    assert task['assigneeId'] == alice.user['id']
    assert alice.get(url).get_json()['ramMatrix'] == [['', 'alice'], ['Bob task', 'O']]

    assert bob.get(url).status_code == 403
    notifications = bob.get(f'{API}/notifications').get_json()['notifications']
    assert notifications[0]['content'] == 'alice removed you from the project "P1".'


def test_member_leaves_project(alice, bob):
    project = create_project(alice)
    add_member(alice, bob, project['id'])

    response = bob.delete(f'{API}/projects/{project["id"]}/members/{bob.user["id"]}')
    assert response.status_code == 200

    notifications = alice.get(f'{API}/notifications').get_json()['notifications']
    assert notifications[0]['content'] == 'bob has left the project "P1".'


def test_manager_cannot_be_removed(alice, bob, carol):
    project = create_project(alice)
    add_member(alice, bob, project['id'])
    add_member(alice, carol, project['id'])
    url = f'{API}/projects/{project["id"]}/members'

    assert bob.delete(f'{url}/{alice.user["id"]}').status_code == 403
    assert alice.delete(f'{url}/{alice.user["id"]}').status_code == 403
    # 一般成員不能移除別人
    assert bob.delete(f'{url}/{carol.user["id"]}').status_code == 403


def test_ram_matrix_row_without_responsible_keeps_assignee(alice, bob):
    project = create_project(alice)
    add_member(alice, bob, project['id'])
    url = f'{API}/projects/{project["id"]}'
    task = alice.post(f'{url}/tasks', json={'name': 'T1'}).get_json()

    response = alice.put(url, json={'ramMatrix': [['', 'alice', 'bob'], ['T1', 'P', 'Z']]})
    assert response.status_code == 200

    task = alice.get(f'{url}/tasks/{task["id"]}').get_json()
    assert task['assigneeId'] == alice.user['id']
    assert usernames(task['informed']) == ['alice', 'bob']
    assert usernames(task['approvers']) == ['bob']


def test_stale_ram_matrix_is_rejected(alice, bob, carol):
    project = create_project(alice)
    add_member(alice, carol, project['id'])
    url = f'{API}/projects/{project["id"]}'
    task = alice.post(f'{url}/tasks', json={'name': 'T1'}).get_json()

    matrix = alice.get(url).get_json()['ramMatrix']
    assert matrix == [['', 'alice', 'carol'], ['T1', 'O', 'P']]

    # bob 在 GET 和 PUT 之間加入,欄位順序變成 alice, bob, carol
    add_member(alice, bob, project['id'])

    response = alice.put(url, json={'ramMatrix': [['', 'alice', 'carol'], ['T1', 'O', 'Z']]})
    assert response.status_code == 409
    assert response.get_json()['error'] == 'conflict'

    task = alice.get(f'{url}/tasks/{task["id"]}').get_json()
    assert task['approvers'] == []


def test_stale_ram_matrix_writes_nothing_else(alice):
    project = create_project(alice)
    url = f'{API}/projects/{project["id"]}'
    alice.post(f'{url}/tasks', json={'name': 'T1'})

    response = alice.patch(url, json={
        'name': 'Renamed',
        'ramMatrix': [['', 'alice'], ['Old name', 'O']]
    })
    assert response.status_code == 409
    assert alice.get(url).get_json()['name'] == 'P1'
