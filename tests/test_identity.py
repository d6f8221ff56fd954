import pytest

from studycore.identity import SessionIdentity


def test_listeners_see_transitions():
    identity = SessionIdentity()
    seen = []
    unsubscribe = identity.subscribe(seen.append)

    identity.sign_in("alice")
    identity.sign_in("alice")
    identity.sign_out()
    identity.sign_out()
    unsubscribe()
    identity.sign_in("bob")

    assert seen == ["alice", None]
    assert identity.current_identity() == "bob"
    assert identity.signed_in


@pytest.mark.parametrize("raw", ["", "   "])
def test_empty_identity_rejected(raw):
    with pytest.raises(ValueError):
        SessionIdentity(raw)
    with pytest.raises(ValueError):
        SessionIdentity().sign_in(raw)
