from conftest import API, create_project


def invite(user_client, project_id, names):
    return user_client.post(f'{API}/projects/{project_id}/invite', json={'usernames': names})


def test_invite_accept_scenario(alice, bob):
    project = create_project(alice, 'P1')

    response = invite(alice, project['id'], ['bob'])
    assert response.status_code == 200
    data = response.get_json()
    assert data['message'] == 'Invitations and notifications sent'
    assert len(data['invitations']) == 1
    invitation_id = data['invitations'][0]['id']

    notifications = bob.get(f'{API}/notifications').get_json()['notifications']
    assert len(notifications) == 1
    assert notifications[0]['content'] == 'alice invited you to join the project "P1".'
    assert notifications[0]['projectInvitationId'] == invitation_id
    assert notifications[0]['projectInvitation']['projectId'] == project['id']

    invitation = bob.get(f'{API}/invitations/{invitation_id}').get_json()
    assert invitation['project']['name'] == 'P1'
    assert invitation['user']['username'] == 'bob'
    assert invitation['inviter']['username'] == 'alice'

    response = bob.post(f'{API}/invitations/{invitation_id}/respond', json={'response': 'accept'})
    assert response.status_code == 200
    assert response.get_json()['message'] == 'Invitation accepted'

    # 邀請和它的通知都刪除了
    assert bob.get(f'{API}/notifications').get_json()['total'] == 0
    assert bob.get(f'{API}/invitations/{invitation_id}').status_code == 404

    notifications = alice.get(f'{API}/notifications').get_json()['notifications']
    assert [n['content'] for n in notifications] == ['bob has joined to the project "P1".']

    for user_client in (alice, bob):
        projects = user_client.get(f'{API}/projects').get_json()['projects']
        assert [p['name'] for p in projects] == ['P1']
        assert [m['username'] for m in projects[0]['members']] == ['alice', 'bob']


def test_decline_invitation(alice, bob):
    project = create_project(alice)
    invitation_id = invite(alice, project['id'], ['bob']).get_json()['invitations'][0]['id']

    response = bob.post(f'{API}/invitations/{invitation_id}/respond', json={'response': 'decline'})
    assert response.status_code == 200
    assert response.get_json()['message'] == 'Invitation declined'

    assert bob.get(f'{API}/projects').get_json()['total'] == 0
    assert bob.get(f'{API}/notifications').get_json()['total'] == 0
    assert alice.get(f'{API}/notifications').get_json()['total'] == 0


def test_second_response_is_not_found(alice, bob):
    project = create_project(alice)
    invitation_id = invite(alice, project['id'], ['bob']).get_json()['invitations'][0]['id']
    url = f'{API}/invitations/{invitation_id}/respond'

    assert bob.post(url, json={'response': 'accept'}).status_code == 200
    assert bob.post(url, json={'response': 'decline'}).status_code == 404


def test_only_invitee_can_respond(alice, bob):
    project = create_project(alice)
    invitation_id = invite(alice, project['id'], ['bob']).get_json()['invitations'][0]['id']

    response = alice.post(f'{API}/invitations/{invitation_id}/respond', json={'response': 'accept'})
    assert response.status_code == 403


def test_invalid_response_value(alice, bob):
    project = create_project(alice)
    invitation_id = invite(alice, project['id'], ['bob']).get_json()['invitations'][0]['id']

    response = bob.post(f'{API}/invitations/{invitation_id}/respond', json={'response': 'maybe'})
    assert response.status_code == 400


def test_invitation_visibility(alice, bob, carol):
    project = create_project(alice)
    invitation_id = invite(alice, project['id'], ['bob']).get_json()['invitations'][0]['id']
    url = f'{API}/invitations/{invitation_id}'

    assert alice.get(url).status_code == 200
    assert bob.get(url).status_code == 200
    assert carol.get(url).status_code == 403


def test_invite_skips_self_members_and_pending(alice, bob, carol):
    project = create_project(alice)

    response = invite(alice, project['id'], ['bob', 'alice', 'bob'])
    data = response.get_json()
    assert [i['user']['username'] for i in data['invitations']] == ['bob']
    assert data['skipped'] == ['alice']

    # bob 已經有待處理的邀請
    response = invite(alice, project['id'], ['bob', 'carol'])
    data = response.get_json()
    assert [i['user']['username'] for i in data['invitations']] == ['carol']
    assert data['skipped'] == ['bob']

    pending = alice.get(f'{API}/projects/{project["id"]}/invitations').get_json()
    assert pending['total'] == 2


def test_invite_unknown_username_creates_nothing(alice, bob):
    project = create_project(alice)

    response = invite(alice, project['id'], ['bob', 'ghost'])
    assert response.status_code == 404
    assert response.get_json()['details'] == {'usernames': ['ghost']}

    assert bob.get(f'{API}/notifications').get_json()['total'] == 0
    assert alice.get(f'{API}/projects/{project["id"]}/invitations').get_json()['total'] == 0


def test_non_member_cannot_invite(alice, bob, carol):
    project = create_project(alice)

    response = invite(bob, project['id'], ['carol'])
    assert response.status_code == 403


def test_invite_requires_usernames(alice):
    project = create_project(alice)

    response = invite(alice, project['id'], [])
    assert response.status_code == 400
