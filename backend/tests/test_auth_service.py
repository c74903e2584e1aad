import pytest
from examhub.errors import TokenError
from examhub.services import AuthService

PASSWORD = 'Sup3r-secret'


def test_token_issued_before_password_change_is_rejected(session, clock):
    svc = AuthService(session, clock=clock)
    user, _ = svc.register('alice', PASSWORD)
    old_payload = {'user_id': user.id, 'iat': int(clock().timestamp())}
    assert svc.user_for_token(old_payload).id == user.id

    clock.advance(minutes=5)
    svc.change_password(user, PASSWORD, 'Rotated-pass-5')
    with pytest.raises(TokenError):
        svc.user_for_token(old_payload)

    fresh_payload = {'user_id': user.id, 'iat': int(clock().timestamp())}
    assert svc.user_for_token(fresh_payload).id == user.id


def test_token_without_issue_time_is_rejected(session, clock):
    svc = AuthService(session, clock=clock)
    user, _ = svc.register('bob', PASSWORD)
    with pytest.raises(TokenError):
        svc.user_for_token({'user_id': user.id})


def test_token_for_unknown_user_is_rejected(session, clock):
    with pytest.raises(TokenError):
        AuthService(session, clock=clock).user_for_token({'user_id': 4242, 'iat': 0})
