from datetime import datetime, timedelta, timezone

import pytest
from cryptography.hazmat.primitives.asymmetric import ed25519, rsa

from tests.factories import make_user, new_public_key
from userservice.domain.entities import User


def _kwargs(**overrides):  # type: ignore[no-untyped-def]
    base = dict(
        email="jon.doe@email.com",
        name="Jon Doe",
        public_key=new_public_key(),
        wrapped_private_key=b"priv",
        wrapped_master_key=b"master",
    )
    base.update(overrides)
    return base


def test_user_defaults_have_no_timestamps() -> None:
    user = User(**_kwargs())
    assert user.created_at is None
    assert user.updated_at is None


def test_email_is_stripped_and_validated() -> None:
    assert User(**_kwargs(email="  jon@email.com ")).email == "jon@email.com"
    with pytest.raises(ValueError):
        User(**_kwargs(email=""))
    with pytest.raises(ValueError):
        User(**_kwargs(email="no-at-sign"))


@pytest.mark.parametrize(
    "bad_key",
    [
        b"\x30\x59",
        "a string",
        rsa.generate_private_key(public_exponent=65537, key_size=2048).public_key(),
        ed25519.Ed25519PrivateKey.generate().public_key(),
    ],
)
def test_only_elliptic_curve_keys_are_accepted(bad_key: object) -> None:
    with pytest.raises(ValueError, match="elliptic-curve"):
        User(**_kwargs(public_key=bad_key))


def test_naive_timestamps_rejected_and_aware_normalised() -> None:
    with pytest.raises(ValueError):
        User(**_kwargs(created_at=datetime(2024, 1, 1)))
    plus_two = timezone(timedelta(hours=2))
    user = User(**_kwargs(created_at=datetime(2024, 1, 1, 12, tzinfo=plus_two)))
    assert user.created_at == datetime(2024, 1, 1, 10, tzinfo=timezone.utc)
    assert user.created_at.tzinfo == timezone.utc


def test_with_timestamps_sets_both_fields() -> None:
    now = datetime.now(timezone.utc)
    user = make_user()
    stamped = user.with_timestamps(now)
    assert stamped.created_at == stamped.updated_at == now
    assert user.created_at is None


def test_user_is_frozen() -> None:
    user = make_user()
    with pytest.raises(ValueError):
        user.name = "Other"  # type: ignore[misc]


def test_repr_hides_wrapped_keys() -> None:
    text = repr(make_user())
    assert "jon.doe@email.com" in text
    assert "wrapped-private" not in text
    assert "wrapped-master" not in text
