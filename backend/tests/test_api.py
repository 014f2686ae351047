import logging

from fastapi.testclient import TestClient

from studyhub.main import app

client = TestClient(app)


def _register(name, email=None, password="pass123"):
    email = email or f"{name.lower()}@example.com"
    r = client.post('/auth/register', json={'name': name, 'email': email, 'password': password})
    assert r.status_code == 201
    body = r.json()
    return body['user']['id'], {'Authorization': f"Bearer {body['access_token']}"}


def _quiz_post(headers, group_id, correct_index=2, points=50):
    content = {
        'type': 'quiz',
        'text': 'Questão Desafio',
        'quiz': {'question': 'Qual?', 'options': ['A', 'B', 'C', 'D'], 'correct_index': correct_index, 'points': points},
    }
    r = client.post(f'/groups/{group_id}/posts', json={'content': content}, headers=headers)
    assert r.status_code == 201
    return r.json()['id']


def test_register_login_and_profile():
    user_id, _ = _register('Ana')
    dup = client.post('/auth/register', json={'name': 'Ana', 'email': 'ana@example.com', 'password': 'x'})
    assert dup.status_code == 409
    bad = client.post('/auth/login', json={'email': 'ana@example.com', 'password': 'wrong'})
    assert bad.status_code == 401
    login = client.post('/auth/login', json={'email': 'ana@example.com', 'password': 'pass123'})
    assert login.status_code == 200
    headers = {'Authorization': f"Bearer {login.json()['access_token']}"}
    me = client.get('/users/me', headers=headers)
    assert me.status_code == 200
    body = me.json()
    assert body['id'] == user_id
    assert (body['hours'], body['points'], body['trend']) == (0, 0, 'neutral')


def test_protected_endpoints_require_token():
    r = client.post('/progress', json={'hours': 1})
    assert r.status_code in (401, 403)
    r = client.get('/users/me', headers={'Authorization': 'Bearer invalid.token.here'})
    assert r.status_code == 401


def test_progress_delta_reset_and_sessions():
    user_id, headers = _register('Ana')
    r = client.post('/progress', json={'hours': 2.5, 'points': 30}, headers=headers)
    assert r.status_code == 200
    assert r.json()['points'] == 30
    assert client.post('/progress', json={'hours': -1}, headers=headers).status_code == 422

    s = client.post('/progress/sessions', json={'subject': 'Direito', 'hours': 1.5}, headers=headers)
    assert s.status_code == 201
    assert s.json()['progress']['hours'] == 4.0
    sessions = client.get('/progress/sessions', headers=headers).json()
    assert [x['subject'] for x in sessions] == ['Direito']

    reset = client.post('/progress/reset', json={'field': 'points'}, headers=headers)
    assert reset.status_code == 200
    assert (reset.json()['points'], reset.json()['hours']) == (0, 4.0)
    assert client.post('/progress/reset', json={'field': 'trend'}, headers=headers).status_code == 422

    own = client.get(f'/users/{user_id}/progress', headers=headers)
    assert own.status_code == 200


def test_progress_is_owner_only():
    owner_id, _ = _register('Ana')
    _, other_headers = _register('Bia')
    r = client.get(f'/users/{owner_id}/progress', headers=other_headers)
    assert r.status_code == 403


def test_rankings_by_metric():
    _, ana = _register('Ana')
    _, bia = _register('Bia')
    _, caio = _register('Caio')
    client.post('/progress', json={'hours': 5, 'points': 100}, headers=ana)
    client.post('/progress', json={'hours': 10, 'points': 100}, headers=bia)
    client.post('/progress', json={'hours': 50, 'points': 80}, headers=caio)

    by_points = client.get('/rankings', params={'metric': 'points'})
    assert by_points.status_code == 200
    assert [e['user']['name'] for e in by_points.json()] == ['Bia', 'Ana', 'Caio']
    assert [e['rank'] for e in by_points.json()] == [1, 2, 3]

    by_hours = client.get('/rankings', params={'metric': 'hours'}).json()
    assert [e['user']['name'] for e in by_hours] == ['Caio', 'Bia', 'Ana']
    assert by_hours[0]['hours_display'] == '2d 2h'

    assert client.get('/rankings', params={'metric': 'likes'}).status_code == 400


def test_quiz_flow_over_http():
    author_id, author = _register('Autor')
    player_id, player = _register('Jogador')
    g = client.post('/groups', json={'name': 'Medicina'}, headers=author)
    assert g.status_code == 201
    group_id = g.json()['id']
    assert [x['id'] for x in client.get('/groups').json()] == [group_id]
    quiz_id = _quiz_post(author, group_id)

    self_answer = client.post(f'/groups/{group_id}/posts/{quiz_id}/answer', json={'option_index': 2}, headers=author)
    assert self_answer.status_code == 403

    invalid = client.post(f'/groups/{group_id}/posts/{quiz_id}/answer', json={'option_index': 7}, headers=player)
    assert invalid.status_code == 400

    ok = client.post(f'/groups/{group_id}/posts/{quiz_id}/answer', json={'option_index': 2}, headers=player)
    assert ok.status_code == 200
    assert ok.json() == {'is_correct': True, 'points_awarded': 50}

    again = client.post(f'/groups/{group_id}/posts/{quiz_id}/answer', json={'option_index': 2}, headers=player)
    assert again.status_code == 409

    missing = client.post(f'/groups/{group_id}/posts/nope/answer', json={'option_index': 0}, headers=player)
    assert missing.status_code == 404

    me = client.get('/users/me', headers=player).json()
    assert me['points'] == 50

    posts = client.get(f'/groups/{group_id}/posts', headers=player).json()
    assert posts[0]['type'] == 'quiz'
    assert posts[0]['user_answer'] == {'option_index': 2, 'is_correct': True}
    anonymous = client.get(f'/groups/{group_id}/posts').json()
    assert anonymous[0]['quiz']['correct_index'] is None
    assert 'user_answer' not in anonymous[0]


def test_tagged_post_variants():
    _, headers = _register('Ana')
    group_id = client.post('/groups', json={'name': 'OAB'}, headers=headers).json()['id']
    text = client.post(f'/groups/{group_id}/posts', json={'content': {'type': 'text', 'text': 'Bom dia'}}, headers=headers)
    assert text.status_code == 201 and text.json()['type'] == 'text'
    file = client.post(
        f'/groups/{group_id}/posts',
        json={'content': {'type': 'file', 'text': 'resumo.pdf', 'file_name': 'resumo.pdf'}},
        headers=headers,
    )
    assert file.status_code == 201 and file.json()['file_name'] == 'resumo.pdf'
    unknown = client.post(f'/groups/{group_id}/posts', json={'content': {'type': 'poll', 'text': '?'}}, headers=headers)
    assert unknown.status_code == 422
    short_quiz = {'type': 'quiz', 'quiz': {'question': 'Q', 'options': ['A', 'B'], 'correct_index': 0}}
    assert client.post(f'/groups/{group_id}/posts', json={'content': short_quiz}, headers=headers).status_code == 400
    assert client.get('/groups/unknown/posts').status_code == 404


def test_delete_account_cascades():
    _, author = _register('Autor')
    player_id, player = _register('Jogador')
    group_id = client.post('/groups', json={'name': 'Enem'}, headers=author).json()['id']
    quiz_id = _quiz_post(author, group_id)
    client.post(f'/groups/{group_id}/posts/{quiz_id}/answer', json={'option_index': 2}, headers=player)

    wrong = client.request('DELETE', '/users/me', json={'password': 'nope'}, headers=player)
    assert wrong.status_code == 400
    gone = client.request('DELETE', '/users/me', json={'password': 'pass123'}, headers=player)
    assert gone.status_code == 200
    assert client.get('/users/me', headers=player).status_code == 401
    names = [e['user']['name'] for e in client.get('/rankings').json()]
    assert names == ['Autor']

    client.request('DELETE', '/users/me', json={'password': 'pass123'}, headers=author)
    assert client.get('/groups').json() == []


def test_request_id_header_exists():
    r = client.get('/health')
    assert r.status_code == 200
    assert 'X-Request-ID' in r.headers
    echoed = client.get('/health', headers={'X-Request-ID': 'abc123'})
    assert echoed.headers['X-Request-ID'] == 'abc123'


def test_non_finite_hours_rejected_and_reads_still_work():
    _, headers = _register('Ana')
    raw = {**headers, 'Content-Type': 'application/json'}
    r = client.post('/progress', content='{"hours": Infinity}', headers=raw)
    assert r.status_code == 422
    r = client.post('/progress', content='{"hours": NaN}', headers=raw)
    assert r.status_code == 422
    r = client.post('/progress/sessions', content='{"subject": "Math", "hours": Infinity}', headers=raw)
    assert r.status_code == 422

    assert client.get('/rankings').status_code == 200
    assert client.get('/rankings?metric=hours').status_code == 200
    me = client.get('/users/me', headers=headers)
    assert me.status_code == 200
    assert me.json()['hours'] == 0


def test_session_listing_limit_is_bounded():
    _, headers = _register('Ana')
    for limit in (-1, 0, 201):
        assert client.get(f'/progress/sessions?limit={limit}', headers=headers).status_code == 422
    assert client.get('/progress/sessions?limit=200', headers=headers).status_code == 200


def test_bad_token_on_optional_route_is_logged(caplog):
    _, headers = _register('Ana')
    group_id = client.post('/groups', json={'name': 'Enem'}, headers=headers).json()['id']
    caplog.set_level(logging.DEBUG, logger='studyhub.auth')
    r = client.get(f'/groups/{group_id}/posts', headers={'Authorization': 'Bearer invalid.token.here'})
    assert r.status_code == 200
    records = [rec for rec in caplog.records if rec.name == 'studyhub.auth']
    assert records and records[0].levelno == logging.DEBUG
    assert 'invalid token' in records[0].getMessage()


def test_feed_posts_likes_and_comments():
    _, ana = _register('Ana')
    _, bia = _register('Bia')
    r = client.post('/posts', json={'content': 'Semana 1', 'image_start': 'https://img/a.png',
                                    'image_end': 'https://img/b.png'}, headers=ana)
    assert r.status_code == 201
    post = r.json()
    assert (post['image_start'], post['image_end'], post['likes']) == ('https://img/a.png', 'https://img/b.png', 0)
    assert client.post('/posts', json={'content': ''}, headers=ana).status_code == 422

    feed = client.get('/posts').json()
    assert [p['id'] for p in feed] == [post['id']]
    assert feed[0]['user']['name'] == 'Ana'

    assert client.put(f"/posts/{post['id']}", json={'content': 'x'}, headers=bia).status_code == 403
    assert client.put('/posts/missing', json={'content': 'x'}, headers=ana).status_code == 404
    edited = client.put(f"/posts/{post['id']}", json={'content': 'Semana 1 (editado)'}, headers=ana)
    assert edited.json()['content'] == 'Semana 1 (editado)'

    assert client.post(f"/posts/{post['id']}/like", headers=bia).json() == {'liked': True, 'count': 1}
    assert client.post(f"/posts/{post['id']}/like", headers=ana).json() == {'liked': True, 'count': 2}
    assert client.post(f"/posts/{post['id']}/like", headers=bia).json() == {'liked': False, 'count': 1}
    assert client.get(f"/posts/{post['id']}/likes").json() == {'count': 1}
    assert client.post('/posts/missing/like', headers=bia).status_code == 404

    c = client.post(f"/posts/{post['id']}/comments", json={'content': 'Boa!'}, headers=bia)
    assert c.status_code == 201
    comment_id = c.json()['id']
    assert client.put(f'/comments/{comment_id}', json={'content': 'x'}, headers=ana).status_code == 403
    assert client.put(f'/comments/{comment_id}', json={'content': 'Muito boa!'}, headers=bia).status_code == 200
    comments = client.get(f"/posts/{post['id']}/comments").json()
    assert [(x['content'], x['user']['name']) for x in comments] == [('Muito boa!', 'Bia')]
    assert client.delete(f'/comments/{comment_id}', headers=ana).status_code == 403
    assert client.delete(f'/comments/{comment_id}', headers=bia).status_code == 200
    assert client.delete(f'/comments/{comment_id}', headers=bia).status_code == 404

    assert client.delete(f"/posts/{post['id']}", headers=bia).status_code == 403
    assert client.delete(f"/posts/{post['id']}", headers=ana).status_code == 200
    assert client.get('/posts').json() == []
    assert client.get(f"/posts/{post['id']}/likes").status_code == 404


def test_follow_unfollow_and_counters():
    ana_id, ana = _register('Ana')
    bia_id, bia = _register('Bia')
    assert client.post(f'/users/{ana_id}/follow', headers=ana).status_code == 400
    assert client.post('/users/nobody/follow', headers=ana).status_code == 404
    assert client.post(f'/users/{bia_id}/follow', headers=ana).status_code == 200
    assert client.post(f'/users/{bia_id}/follow', headers=ana).status_code == 409
    assert client.get(f'/users/{bia_id}/is-following', headers=ana).json() == {'is_following': True}
    assert client.get(f'/users/{ana_id}/is-following', headers=bia).json() == {'is_following': False}

    me_ana = client.get('/users/me', headers=ana).json()
    me_bia = client.get('/users/me', headers=bia).json()
    assert (me_ana['following_count'], me_ana['followers_count']) == (1, 0)
    assert (me_bia['following_count'], me_bia['followers_count']) == (0, 1)

    assert client.delete(f'/users/{bia_id}/follow', headers=ana).status_code == 200
    assert client.delete(f'/users/{bia_id}/follow', headers=ana).status_code == 404
    assert client.get('/users/me', headers=bia).json()['followers_count'] == 0
    assert client.get('/users/me', headers=ana).json()['following_count'] == 0


def test_deleting_a_followed_account_fixes_counters():
    ana_id, ana = _register('Ana')
    bia_id, bia = _register('Bia')
    client.post(f'/users/{bia_id}/follow', headers=ana)
    client.post(f'/users/{ana_id}/follow', headers=bia)
    post_id = client.post('/posts', json={'content': 'oi'}, headers=ana).json()['id']
    client.post(f'/posts/{post_id}/like', headers=ana)

    gone = client.request('DELETE', '/users/me', json={'password': 'pass123'}, headers=bia)
    assert gone.status_code == 200
    me = client.get('/users/me', headers=ana).json()
    assert (me['followers_count'], me['following_count']) == (0, 0)
    assert client.get(f'/posts/{post_id}/likes').json() == {'count': 1}


def test_profile_update_and_password_change():
    _, headers = _register('Ana')
    r = client.put('/users/me/profile', json={'name': 'Ana Clara', 'bio': 'Foco no ENEM'}, headers=headers)
    assert r.status_code == 200
    assert (r.json()['name'], r.json()['bio']) == ('Ana Clara', 'Foco no ENEM')
    assert client.put('/users/me/profile', json={'name': ''}, headers=headers).status_code == 422

    wrong = client.put('/users/me/password', json={'current_password': 'nope', 'new_password': 'novo'},
                       headers=headers)
    assert wrong.status_code == 400
    ok = client.put('/users/me/password', json={'current_password': 'pass123', 'new_password': 'novo'},
                    headers=headers)
    assert ok.status_code == 200
    assert client.post('/auth/login', json={'email': 'ana@example.com', 'password': 'pass123'}).status_code == 401
    assert client.post('/auth/login', json={'email': 'ana@example.com', 'password': 'novo'}).status_code == 200


def test_search_users_and_groups():
    ana_id, ana = _register('Ana Souza', email='ana@example.com')
    bia_id, _ = _register('Bia Souza', email='bia@example.com')
    _register('Caio')
    client.post(f'/users/{bia_id}/follow', headers=ana)
    client.post('/groups', json={'name': 'Medicina', 'description': 'Grupo de anatomia'}, headers=ana)
    client.post('/groups', json={'name': 'Direito'}, headers=ana)

    assert client.get('/search/users?q=').json() == []
    anon = client.get('/search/users?q=souza').json()
    assert [u['name'] for u in anon] == ['Ana Souza', 'Bia Souza']
    assert 'is_following' not in anon[0]
    mine = {u['id']: u for u in client.get('/search/users?q=souza', headers=ana).json()}
    assert (mine[ana_id]['is_me'], mine[ana_id]['is_following']) == (True, False)
    assert (mine[bia_id]['is_me'], mine[bia_id]['is_following']) == (False, True)
    assert mine[bia_id]['followers_count'] == 1

    assert client.get('/search/groups?q=').json() == []
    assert [g['name'] for g in client.get('/search/groups?q=anatomia').json()] == ['Medicina']
    assert [g['name'] for g in client.get('/search/groups?q=dir').json()] == ['Direito']

    suggestions = client.get('/users/suggestions', headers=ana).json()
    assert [u['name'] for u in suggestions] == ['Caio']


def test_delete_group_post_by_author_or_creator():
    _, creator = _register('Dona')
    _, author = _register('Autor')
    _, other = _register('Outro')
    group_id = client.post('/groups', json={'name': 'Enem'}, headers=creator).json()['id']
    quiz_id = _quiz_post(author, group_id)
    client.post(f'/groups/{group_id}/posts/{quiz_id}/answer', json={'option_index': 2}, headers=other)
    text_id = client.post(f'/groups/{group_id}/posts', json={'content': {'type': 'text', 'text': 'oi'}},
                          headers=author).json()['id']

    assert client.delete(f'/groups/{group_id}/posts/{quiz_id}', headers=other).status_code == 403
    assert client.delete(f'/groups/{group_id}/posts/missing', headers=author).status_code == 404
    assert client.delete(f'/groups/{group_id}/posts/{quiz_id}', headers=creator).status_code == 200
    assert client.delete(f'/groups/{group_id}/posts/{text_id}', headers=author).status_code == 200
    assert client.get(f'/groups/{group_id}/posts').json() == []
    # points already earned stay on the ledger
    assert client.get('/users/me', headers=other).json()['points'] == 50
