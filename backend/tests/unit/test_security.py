from garmentflow.utils.security import create_access_token, decode_access_token


def test_access_token_round_trip() -> None:
    token = create_access_token("user-1", role="PENJAHIT")
    payload = decode_access_token(token)

    assert payload is not None
    assert payload["sub"] == "user-1"
    assert payload["role"] == "PENJAHIT"
    assert payload["type"] == "access"


def test_decode_rejects_garbage_token() -> None:
    assert decode_access_token("not-a-jwt") is None


def test_decode_rejects_expired_token() -> None:
    token = create_access_token("user-1", expires_minutes=-1)
    assert decode_access_token(token) is None
