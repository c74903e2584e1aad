from fastapi.testclient import TestClient
from examhub.main import app

client = TestClient(app)

EXAM = {
    'title': 'Intro to Python',
    'description': 'Basics of the language',
    'category': 'Technology',
    'difficulty': 'Easy',
    'duration': 30,
    'total_questions': 10,
    'passing_score': 60,
    'is_published': True,
}


def _auth(username):
    client.post('/auth/register', json={'username': username, 'password': 'Sup3r-secret'})
    token = client.post('/auth/login', json={'username': username, 'password': 'Sup3r-secret'}).json()['access_token']
    return {'Authorization': f'Bearer {token}'}


def _create_exam(headers, **overrides):
    r = client.post('/exams', json={**EXAM, **overrides}, headers=headers)
    assert r.status_code == 201
    return r.json()


def test_new_exam_has_zeroed_aggregates():
    headers = _auth('instructor')
    exam = _create_exam(headers)
    assert exam['statistics'] == {
        'totalAttempts': 0,
        'averageScore': 0,
        'highestScore': 0,
        'lowestScore': 0,
        'totalTimeSpent': 0,
        'averageTimePerAttempt': 0,
        'completionRate': 0,
        'passRate': 0,
    }
    assert exam['ratings'] == []
    assert exam['averageRating'] == 0
    assert exam['totalRatings'] == 0


def test_invalid_exam_payload_rejected():
    headers = _auth('instructor')
    r = client.post('/exams', json={**EXAM, 'category': 'Cooking'}, headers=headers)
    assert r.status_code == 422


def test_attempts_update_statistics_and_summary():
    headers = _auth('student')
    exam_id = _create_exam(headers)['id']
    r1 = client.post(f'/exams/{exam_id}/attempts', json={'score': 80, 'duration': 600}, headers=headers)
    assert r1.status_code == 200
    r2 = client.post(f'/exams/{exam_id}/attempts', json={'score': 45, 'duration': 900, 'passed': False}, headers=headers)
    stats = r2.json()
    assert stats['totalAttempts'] == 2
    assert stats['averageScore'] == 62.5
    assert stats['highestScore'] == 80
    assert stats['lowestScore'] == 45
    assert stats['totalTimeSpent'] == 1500
    assert stats['averageTimePerAttempt'] == 750
    assert stats['passRate'] == 50
    assert stats['completionRate'] == 100

    summary = client.get(f'/exams/{exam_id}/summary').json()
    assert summary['statistics']['averageScore'] == '62.50'
    assert summary['statistics']['passRate'] == '50.00'
    assert summary['statistics']['completionRate'] == '100.00'


def test_attempt_score_out_of_range_rejected():
    headers = _auth('student')
    exam_id = _create_exam(headers)['id']
    r = client.post(f'/exams/{exam_id}/attempts', json={'score': 101}, headers=headers)
    assert r.status_code == 422


def test_attempt_on_missing_exam_is_404():
    headers = _auth('student')
    r = client.post('/exams/9999/attempts', json={'score': 50}, headers=headers)
    assert r.status_code == 404


def test_ratings_flow_between_users():
    alice = _auth('alice')
    bob = _auth('bob')
    exam_id = _create_exam(alice)['id']

    client.put(f'/exams/{exam_id}/ratings', json={'score': 4, 'review': 'solid'}, headers=alice)
    r = client.put(f'/exams/{exam_id}/ratings', json={'score': 2}, headers=bob)
    bob_rating = r.json()['rating']
    r = client.put(f'/exams/{exam_id}/ratings', json={'score': 5}, headers=alice)
    assert r.json()['totalRatings'] == 2
    assert r.json()['averageRating'] == 3.5

    h = client.post(f'/exams/{exam_id}/ratings/{bob_rating["id"]}/helpful', headers=alice)
    assert h.json()['rating']['helpful'] == 1
    stale = client.post(f'/exams/{exam_id}/ratings/unknown/helpful', headers=alice)
    assert stale.status_code == 200
    assert stale.json()['rating'] is None

    d = client.delete(f'/exams/{exam_id}/ratings', headers=bob)
    assert d.json() == {'averageRating': 5.0, 'totalRatings': 1}
    d = client.delete(f'/exams/{exam_id}/ratings', headers=alice)
    assert d.json() == {'averageRating': 0, 'totalRatings': 0}


def test_rating_bounds_enforced():
    headers = _auth('alice')
    exam_id = _create_exam(headers)['id']
    assert client.put(f'/exams/{exam_id}/ratings', json={'score': 6}, headers=headers).status_code == 422
    assert client.put(f'/exams/{exam_id}/ratings', json={'score': 3, 'review': 'x' * 501}, headers=headers).status_code == 422


def test_views_and_top_rated():
    headers = _auth('alice')
    low = _create_exam(headers, title='Lower rated exam')['id']
    high = _create_exam(headers, title='Higher rated exam')['id']
    client.put(f'/exams/{low}/ratings', json={'score': 2}, headers=headers)
    client.put(f'/exams/{high}/ratings', json={'score': 5}, headers=headers)
    client.get(f'/exams/{high}')
    assert client.get(f'/exams/{high}').json()['views'] == 2
    top = client.get('/exams/top-rated').json()
    assert [e['id'] for e in top] == [high, low]


def test_attempts_update_taker_statistics_and_attempt_counter():
    author = _auth('instructor')
    student = _auth('student')
    exam_id = _create_exam(author)['id']
    client.post(f'/exams/{exam_id}/attempts', json={'score': 70, 'duration': 1800}, headers=student)
    client.post(f'/exams/{exam_id}/attempts', json={'score': 85, 'duration': 5400}, headers=student)

    me = client.get('/auth/me', headers=student).json()
    assert me['statistics']['totalExamsTaken'] == 2
    assert me['statistics']['averageScore'] == 78
    assert me['statistics']['totalStudyHours'] == 2.0
    assert me['statistics']['lastActiveDate']
    assert client.get('/auth/me', headers=author).json()['statistics']['totalExamsTaken'] == 0

    assert client.get(f'/exams/{exam_id}').json()['attempts'] == 2


def test_most_attempted_and_creator_listings():
    author = _auth('instructor')
    busy = _create_exam(author, title='Busy exam')['id']
    quiet = _create_exam(author, title='Quiet exam')['id']
    draft = _create_exam(author, title='Draft exam', is_published=False)['id']
    for _ in range(3):
        client.post(f'/exams/{busy}/attempts', json={'score': 50}, headers=author)
    client.post(f'/exams/{quiet}/attempts', json={'score': 50}, headers=author)

    top = client.get('/exams/most-attempted').json()
    assert [e['id'] for e in top] == [busy, quiet]

    me = client.get('/auth/me', headers=author).json()
    public = client.get(f"/users/{me['id']}/exams").json()
    assert sorted(e['id'] for e in public) == sorted([busy, quiet])
    mine = client.get('/exams/mine', headers=author).json()
    assert draft in [e['id'] for e in mine]
    assert len(mine) == 3
