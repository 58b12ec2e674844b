import unittest
from datetime import datetime, timedelta, timezone

from jose import jwt

from escala.auth.security import (
    ALGORITHM,
    create_access_token,
    get_password_hash,
    read_access_token,
    verify_password,
)
from escala.config import settings


class TestAccessToken(unittest.TestCase):
    def test_subject_round_trip(self) -> None:
        token = create_access_token("Fernanda Sá Carvalho")
        self.assertEqual(read_access_token(token), "Fernanda Sá Carvalho")

    def test_claims_carry_no_role(self) -> None:
        claims = jwt.get_unverified_claims(create_access_token("Eduardo Mosna Xavier"))
        self.assertEqual(set(claims), {"type", "sub", "iat", "exp"})

    def test_tampered_token_rejected(self) -> None:
        token = create_access_token("Eduardo Mosna Xavier")
        forged = jwt.encode(jwt.get_unverified_claims(token), "not-the-secret", algorithm=ALGORITHM)
        for value in (token[:-2] + "xx", forged, "", "abc"):
            with self.subTest(value=value):
                with self.assertRaises(ValueError):
                    read_access_token(value)

    def test_wrong_type_rejected(self) -> None:
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"type": "refresh", "sub": "Eduardo Mosna Xavier", "exp": int((now + timedelta(minutes=5)).timestamp())},
            settings.JWT_SECRET,
            algorithm=ALGORITHM,
        )
        with self.assertRaises(ValueError):
            read_access_token(token)

    def test_expired_token_rejected(self) -> None:
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"type": "access", "sub": "Eduardo Mosna Xavier", "exp": int((now - timedelta(minutes=1)).timestamp())},
            settings.JWT_SECRET,
            algorithm=ALGORITHM,
        )
        with self.assertRaises(ValueError):
            read_access_token(token)

    def test_missing_subject_rejected(self) -> None:
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"type": "access", "exp": int((now + timedelta(minutes=5)).timestamp())},
            settings.JWT_SECRET,
            algorithm=ALGORITHM,
        )
        with self.assertRaises(ValueError):
            read_access_token(token)


class TestPasswordHash(unittest.TestCase):
    def test_hash_verifies(self) -> None:
        hashed = get_password_hash("nova-senha-1")
        self.assertNotEqual(hashed, "nova-senha-1")
        self.assertTrue(verify_password("nova-senha-1", hashed))
        self.assertFalse(verify_password("errada", hashed))


if __name__ == "__main__":
    unittest.main()
