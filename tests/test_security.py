from datetime import timedelta

import pytest

from scribe.utils import (
    AuthenticationError,
    create_access_token,
    decode_access_token,
    new_anonymous_user_id,
)


def test_anonymous_token_round_trip():
    user_id = new_anonymous_user_id()
    payload = decode_access_token(create_access_token(subject=user_id))

    assert payload.sub == user_id
    assert payload.anonymous is True


def test_expired_token_is_rejected():
    token = create_access_token(subject="anon-1", expires_delta=timedelta(seconds=-5))
    with pytest.raises(AuthenticationError):
        decode_access_token(token)


def test_garbage_token_is_rejected():
    with pytest.raises(AuthenticationError):
        decode_access_token("not-a-jwt")
