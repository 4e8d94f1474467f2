from datetime import timedelta

from jose import jwt

from chatsync.utils.time import utc_now

TEST_JWT_SECRET = "test-secret-that-is-long-enough"


def make_token(user_id: str, secret: str = TEST_JWT_SECRET, expires_in: timedelta = timedelta(hours=1)) -> str:
    """Issue an HS256 token the way the identity provider would."""
    return jwt.encode({"sub": user_id, "exp": utc_now() + expires_in}, secret, algorithm="HS256")


def bearer(user_id: str, **kwargs) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id, **kwargs)}"}
